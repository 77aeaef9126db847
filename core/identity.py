"""
Identity provider.

Exposes the currently authenticated owner to the project store and idea
vault. Credential checks belong to the authentication screen and are not
modelled here; a session is either signed in as a user or anonymous.
"""

import logging
from abc import ABC, abstractmethod
from datetime import datetime, timezone
from typing import Callable, Dict, Optional

from pydantic import BaseModel, ConfigDict, field_validator

from .exceptions import AuthenticationError
from .models.entities import new_entity_id
from .storage import paths
from .storage.base import DocumentStore, Unsubscribe

logger = logging.getLogger(__name__)

IdentityCallback = Callable[[Optional["User"]], None]


class User(BaseModel):
    """An authenticated owner"""
    model_config = ConfigDict(frozen=True)

    uid: str
    email: Optional[str] = None

    @field_validator('uid')
    @classmethod
    def validate_uid(cls, v: str) -> str:
        if not v or not v.strip():
            raise ValueError('User id cannot be empty')
        return v


class IdentityProvider(ABC):
    """Source of the current owner"""

    @property
    @abstractmethod
    def current_user(self) -> Optional[User]:
        """The signed-in user, None when anonymous"""

    @abstractmethod
    def subscribe(self, callback: IdentityCallback) -> Unsubscribe:
        """Call back with the current user now and on every sign-in or sign-out"""

    def require_user(self) -> User:
        """
        Return the signed-in user.

        Raises:
            AuthenticationError: nobody is signed in
        """
        user = self.current_user
        if user is None:
            raise AuthenticationError()
        return user


class SessionIdentityProvider(IdentityProvider):
    """In-process session: sign in, sign out and register"""

    def __init__(self, store: Optional[DocumentStore] = None, user: Optional[User] = None):
        self.store = store
        self._user = user
        self._listeners: Dict[int, IdentityCallback] = {}
        self._next_listener_id = 0

    @property
    def current_user(self) -> Optional[User]:
        return self._user

    def subscribe(self, callback: IdentityCallback) -> Unsubscribe:
        listener_id = self._next_listener_id
        self._next_listener_id += 1
        self._listeners[listener_id] = callback
        callback(self._user)

        def unsubscribe() -> None:
            self._listeners.pop(listener_id, None)

        return unsubscribe

    def _notify(self) -> None:
        for callback in list(self._listeners.values()):
            try:
                callback(self._user)
            except Exception as e:
                logger.error(f"Identity listener raised: {e}")

    def sign_in(self, uid: str, email: Optional[str] = None) -> User:
        self._user = User(uid=uid, email=email)
        logger.info(f"Signed in as {uid}")
        self._notify()
        return self._user

    def sign_out(self) -> None:
        if self._user is None:
            return
        logger.info(f"Signed out {self._user.uid}")
        self._user = None
        self._notify()

    async def register(self, email: str, uid: Optional[str] = None) -> User:
        """
        Create a user profile record and sign in as the new user.

        Raises:
            ValueError: no store configured or email missing
            TransportError: the profile write failed
        """
        if self.store is None:
            raise ValueError("Registration requires a document store")
        if not email or not email.strip():
            raise ValueError("Registration requires an email")

        user = User(uid=uid or new_entity_id(), email=email.strip())
        await self.store.set(paths.user_path(user.uid), {
            "uid": user.uid,
            "email": user.email,
            "createdAt": datetime.now(timezone.utc).isoformat()
        })
        logger.info(f"Registered user {user.uid}")
        return self.sign_in(user.uid, user.email)
