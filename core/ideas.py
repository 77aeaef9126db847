"""Idea vault: quick notes kept per user under users/{uid}/ideas."""

import logging
from datetime import datetime, timezone
from typing import Awaitable, Callable, List, Optional, Sequence, Union

from pydantic import BaseModel, ConfigDict, Field

from .history.ledger import parse_timestamp
from .identity import IdentityProvider
from .models.entities import new_entity_id
from .models.storage import DocumentSnapshot
from .storage import paths
from .storage.base import DocumentStore, Unsubscribe, noop_unsubscribe

logger = logging.getLogger(__name__)

IdeasCallback = Callable[[List["Idea"]], Union[None, Awaitable[None]]]

_EPOCH = datetime.min.replace(tzinfo=timezone.utc)


class Idea(BaseModel):
    model_config = ConfigDict(populate_by_name=True, frozen=True, extra="ignore")

    id: str
    content: str
    created_at: Optional[str] = Field(default=None, alias="createdAt")
    tags: List[str] = Field(default_factory=list)


def newest_ideas_first(ideas: Sequence[Idea]) -> List[Idea]:
    return sorted(ideas, key=lambda i: parse_timestamp(i.created_at or "") or _EPOCH, reverse=True)


class IdeaVault:
    """Per-user idea notes"""

    def __init__(self, store: DocumentStore, identity: IdentityProvider):
        self.store = store
        self.identity = identity

    async def save_idea(self, content: str, tags: Optional[Sequence[str]] = None) -> Idea:
        """
        Store a new idea for the signed-in user.

        Raises:
            AuthenticationError: nobody is signed in
            ValueError: content is blank
        """
        user = self.identity.require_user()
        if not content or not content.strip():
            raise ValueError("Idea content cannot be empty")

        idea = Idea(
            id=new_entity_id(),
            content=content,
            created_at=datetime.now(timezone.utc).isoformat(),
            tags=list(tags or [])
        )
        await self.store.set(
            f"{paths.ideas_path(user.uid)}/{idea.id}",
            idea.model_dump(by_alias=True, exclude={"id"})
        )
        logger.info(f"Saved idea {idea.id} for {user.uid}")
        return idea

    async def delete_idea(self, idea_id: str) -> None:
        """Delete an idea; does nothing when nobody is signed in"""
        user = self.identity.current_user
        if user is None:
            return
        await self.store.delete(f"{paths.ideas_path(user.uid)}/{idea_id}")
        logger.info(f"Deleted idea {idea_id} for {user.uid}")

    @staticmethod
    def _ideas(docs: List[DocumentSnapshot]) -> List[Idea]:
        ideas = []
        for doc in docs:
            data = dict(doc.data)
            data["id"] = doc.id
            ideas.append(Idea.model_validate(data))
        return newest_ideas_first(ideas)

    async def list_ideas(self) -> List[Idea]:
        user = self.identity.require_user()
        return self._ideas(await self.store.list_collection(paths.ideas_path(user.uid)))

    def subscribe_ideas(self, on_update: IdeasCallback) -> Unsubscribe:
        """Push the signed-in user's ideas, newest first, on every change"""
        user = self.identity.current_user
        if user is None:
            return noop_unsubscribe

        def handle(docs: List[DocumentSnapshot]):
            return on_update(self._ideas(docs))

        return self.store.watch(paths.ideas_path(user.uid), handle)
