"""
JSON persistence shared by every store of the engine.

Each store (lexical index, vector store, caches, document registry, memory)
owns one file or directory and reloads fully into memory at start-up.
Writes during request handling are fire-and-forget: the payload is
snapshotted on the event loop and written from a worker thread. ``flush()``
is the awaitable durability point used on shutdown.
"""

import asyncio
import json
import logging
import os
import tempfile
import threading
from pathlib import Path
from typing import Any, Optional

logger = logging.getLogger(__name__)


def write_json_atomic(path: Path, payload: Any):
    """Write JSON to ``path`` through a temp file and ``os.replace``."""
    path.parent.mkdir(parents=True, exist_ok=True)
    fd, tmp_name = tempfile.mkstemp(dir=path.parent, prefix=f".{path.name}.", suffix=".tmp")
    try:
        with os.fdopen(fd, "w", encoding="utf-8") as f:
            json.dump(payload, f, ensure_ascii=False, indent=2)
        os.replace(tmp_name, path)
    except BaseException:
        if os.path.exists(tmp_name):
            os.unlink(tmp_name)
        raise


class PersistentStore:
    """Base class for stores persisted as a single JSON document.

    Subclasses implement ``to_payload`` / ``from_payload``; stores persisted
    as several files override ``_write_payload`` / ``_read_payload`` too.
    A store with ``path=None`` is purely in-memory.
    """

    store_name = "store"

    def __init__(self, path: Optional[str | Path] = None):
        self.path = Path(path) if path is not None else None
        self._pending: set[asyncio.Task] = set()
        self._write_lock = threading.Lock()
        self._seq = 0
        self._written_seq = 0

    # -------------------------------------------------------------------------
    # Subclass hooks
    # -------------------------------------------------------------------------

    def to_payload(self) -> Any:
        raise NotImplementedError

    def from_payload(self, payload: Any):
        raise NotImplementedError

    def _exists(self) -> bool:
        return self.path is not None and self.path.exists()

    def _write_payload(self, payload: Any):
        write_json_atomic(self.path, payload)

    def _read_payload(self) -> Any:
        with open(self.path, "r", encoding="utf-8") as f:
            return json.load(f)

    # -------------------------------------------------------------------------
    # Load / save
    # -------------------------------------------------------------------------

    def load(self) -> bool:
        """Replace in-memory state with the persisted one.

        Returns:
            True if persisted state was found and loaded
        """
        if not self._exists():
            return False
        try:
            self.from_payload(self._read_payload())
        except Exception as e:
            logger.error(f"[STORE] Could not load {self.store_name} from {self.path}: {e}")
            return False
        logger.info(f"[STORE] Loaded {self.store_name} from {self.path}")
        return True

    def save(self) -> bool:
        """Synchronously persist the current state. Failures are logged."""
        if self.path is None:
            return True
        self._seq += 1
        return self._write(self.to_payload(), self._seq)

    def _write(self, payload: Any, seq: int) -> bool:
        with self._write_lock:
            # An older snapshot never overwrites a newer one
            if seq < self._written_seq:
                return True
            try:
                self._write_payload(payload)
            except Exception as e:
                logger.error(f"[STORE] Failed to persist {self.store_name} to {self.path}: {e}")
                return False
            self._written_seq = seq
            return True

    def schedule_save(self):
        """Persist in the background without blocking the caller.

        Without a running event loop the write happens synchronously.
        """
        if self.path is None:
            return
        self._seq += 1
        seq = self._seq
        payload = self.to_payload()
        try:
            loop = asyncio.get_running_loop()
        except RuntimeError:
            self._write(payload, seq)
            return
        task = loop.create_task(asyncio.to_thread(self._write, payload, seq))
        self._pending.add(task)
        task.add_done_callback(self._pending.discard)

    async def flush(self) -> bool:
        """Wait for background writes, then persist the latest state."""
        if self._pending:
            await asyncio.gather(*list(self._pending), return_exceptions=True)
        if self.path is None:
            return True
        self._seq += 1
        return await asyncio.to_thread(self._write, self.to_payload(), self._seq)
