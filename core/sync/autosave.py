"""
Debounced auto-save.

Every edit restarts a quiet-period timer; when the timer fires the latest
snapshot is saved, unless its content matches what was last saved
successfully. In-flight saves are never cancelled, so the last write wins.
"""

import asyncio
import logging
from typing import Any, Awaitable, Callable, Optional

from ..models.entities import Project
from ..storage.utils import fingerprint

logger = logging.getLogger(__name__)

SaveFunction = Callable[[Project], Awaitable[Any]]


def content_fingerprint(project: Project) -> str:
    """Hash of everything persisted except the save timestamp"""
    return fingerprint(project.model_dump(mode="json", by_alias=True, exclude={"last_modified"}))


class AutoSaveDebouncer:
    """
    Coalesces bursts of edits into one save.

    Usage:
        debouncer = AutoSaveDebouncer(store.save_full, debounce_ms=1500)
        state.subscribe(debouncer.schedule)
    """

    def __init__(
        self,
        save: SaveFunction,
        debounce_ms: int = 1500,
        on_error: Optional[Callable[[Exception], None]] = None
    ):
        """
        Args:
            save: Coroutine function persisting a project
            debounce_ms: Quiet period after the last edit before saving
            on_error: Called with the exception when a save fails
        """
        self._save = save
        self.debounce_seconds = debounce_ms / 1000.0
        self._on_error = on_error

        self._pending: Optional[Project] = None
        self._timer: Optional[asyncio.Task] = None
        self._last_saved: Optional[str] = None
        self._closed = False

        # Statistics
        self.saves_started = 0
        self.saves_skipped = 0
        self.saves_failed = 0

    @property
    def has_pending(self) -> bool:
        return self._pending is not None

    def mark_saved(self, project: Project) -> None:
        """Record project as already persisted, e.g. right after loading it"""
        self._last_saved = content_fingerprint(project)

    def schedule(self, project: Project) -> None:
        """Register an edit; restarts the quiet period. Needs a running event loop."""
        if self._closed:
            raise RuntimeError("Auto-save is closed")
        self._pending = project
        if self._timer is not None and not self._timer.done():
            self._timer.cancel()
        self._timer = asyncio.get_running_loop().create_task(self._fire_after_delay())

    async def _fire_after_delay(self) -> None:
        try:
            await asyncio.sleep(self.debounce_seconds)
        except asyncio.CancelledError:
            return
        self._timer = None
        await self._save_pending()

    async def _save_pending(self) -> bool:
        project = self._pending
        self._pending = None
        if project is None:
            return False

        current = content_fingerprint(project)
        if current == self._last_saved:
            self.saves_skipped += 1
            logger.debug(f"Project {project.id} unchanged since last save, skipping")
            return False

        self.saves_started += 1
        try:
            await self._save(project)
        except Exception as e:
            self.saves_failed += 1
            logger.error(f"Auto-save of project {project.id} failed: {e}")
            if self._on_error is not None:
                self._on_error(e)
            return False

        self._last_saved = current
        logger.debug(f"Auto-saved project {project.id}")
        return True

    async def flush(self) -> bool:
        """
        Save the pending snapshot now instead of waiting for the timer.

        Returns:
            True when a save happened
        """
        if self._timer is not None and not self._timer.done():
            self._timer.cancel()
        self._timer = None
        return await self._save_pending()

    async def close(self, flush: bool = False) -> None:
        """Stop the timer, optionally saving the pending snapshot first"""
        if flush:
            await self.flush()
        if self._timer is not None and not self._timer.done():
            self._timer.cancel()
        self._timer = None
        self._pending = None
        self._closed = True
