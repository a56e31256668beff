"""Background persistence of cart snapshots."""
import asyncio
from typing import Dict, Optional

from jewelcart.db import KeyValueStore
from jewelcart.logging import get_logger, sanitize_key_for_logging

logger = get_logger(__name__)

_DELETE = object()


class SnapshotWriter:
    """
    Writes full snapshots to the key-value store in the background.

    - Only the newest pending snapshot per key is kept; older ones are dropped
      before they reach the store.
    - One write per key is in flight at a time, so the last snapshot submitted
      is the last one written.
    - Store failures are logged and never raised to the submitter.
    """

    def __init__(self, store: KeyValueStore):
        self._store = store
        self._pending: Dict[str, object] = {}
        self._tasks: Dict[str, asyncio.Task] = {}

    def submit(self, key: str, payload: Optional[str]) -> None:
        """Queue a write of payload under key (None deletes the key)."""
        self._pending[key] = _DELETE if payload is None else payload
        self._ensure_drain(key)

    def has_pending(self, key: str) -> bool:
        return key in self._pending or key in self._tasks

    async def flush(self, key: Optional[str] = None) -> None:
        """Wait until the pending writes for key (or every key) reach the store."""
        keys = [key] if key is not None else list(self._pending.keys() | self._tasks.keys())
        for k in keys:
            while self.has_pending(k):
                self._ensure_drain(k)
                task = self._tasks.get(k)
                if task is None:
                    break
                await task

    def _ensure_drain(self, key: str) -> None:
        task = self._tasks.get(key)
        if task is not None and not task.done():
            return
        try:
            loop = asyncio.get_running_loop()
        except RuntimeError:
            logger.debug(f"No running loop; write for {sanitize_key_for_logging(key)} stays pending")
            self._tasks.pop(key, None)
            return
        self._tasks[key] = loop.create_task(self._drain(key))

    async def _drain(self, key: str) -> None:
        try:
            while key in self._pending:
                op = self._pending.pop(key)
                try:
                    if op is _DELETE:
                        await self._store.delete(key)
                    else:
                        await self._store.set(key, op)
                except Exception as e:
                    logger.error(f"Failed to persist {sanitize_key_for_logging(key)}: {e}")
        finally:
            if self._tasks.get(key) is asyncio.current_task():
                del self._tasks[key]
