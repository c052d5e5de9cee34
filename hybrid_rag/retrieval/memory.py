"""
Answer history and rolling conversation memory.

- HistoryLog: append-only JSON-lines record of answered questions
- ConversationMemory: short per-requester memory, summarized by the
  completion provider once it grows past a size threshold
"""

import json
import logging
import threading
import time
from pathlib import Path
from typing import Optional

from ..storage import PersistentStore
from .llm import CompletionProvider

logger = logging.getLogger(__name__)


class HistoryLog:
    """Append-only history of answered questions."""

    def __init__(self, path: Optional[str | Path] = None):
        self.path = Path(path) if path is not None else None
        self._lock = threading.Lock()
        self._memory: list[dict] = []

    def append(
        self,
        question: str,
        answer: str,
        route: str,
        requester_id: Optional[str] = None,
        used_documents: Optional[list[str]] = None,
    ) -> dict:
        record = {
            "question": question,
            "answer": answer,
            "route": route,
            "requester_id": requester_id,
            "used_documents": list(used_documents or []),
            "timestamp": time.time(),
        }
        with self._lock:
            if self.path is None:
                self._memory.append(record)
                return record
            try:
                self.path.parent.mkdir(parents=True, exist_ok=True)
                with open(self.path, "a", encoding="utf-8") as f:
                    f.write(json.dumps(record, ensure_ascii=False) + "\n")
            except OSError as e:
                logger.error(f"[HISTORY] Could not append to {self.path}: {e}")
        return record

    def tail(self, limit: int = 20) -> list[dict]:
        """Most recent records, oldest first."""
        if self.path is None:
            return self._memory[-limit:]
        if not self.path.exists():
            return []
        records = []
        with self._lock, open(self.path, "r", encoding="utf-8") as f:
            for line in f:
                line = line.strip()
                if not line:
                    continue
                try:
                    records.append(json.loads(line))
                except json.JSONDecodeError:
                    logger.warning(f"[HISTORY] Skipping malformed line in {self.path}")
        return records[-limit:]


class ConversationMemory(PersistentStore):
    """Rolling ``Q:/A:`` memory per requester."""

    store_name = "conversation memory"

    def __init__(
        self,
        path=None,
        summarize_above: int = 2500,
        summary_max_chars: int = 2000,
        fallback_chars: int = 4000,
        summary_prompt: str = "",
    ):
        super().__init__(path)
        self.summarize_above = summarize_above
        self.summary_max_chars = summary_max_chars
        self.fallback_chars = fallback_chars
        self.summary_prompt = summary_prompt
        self.memories: dict[str, str] = {}

    def get(self, requester_id: Optional[str]) -> str:
        if not requester_id:
            return ""
        return self.memories.get(requester_id, "")

    def set(self, requester_id: str, memory: str):
        self.memories[requester_id] = memory
        self.schedule_save()

    def forget(self, requester_id: str) -> bool:
        if self.memories.pop(requester_id, None) is None:
            return False
        self.schedule_save()
        return True

    async def update(
        self,
        requester_id: str,
        question: str,
        answer: str,
        provider: Optional[CompletionProvider] = None,
    ) -> str:
        """Append a Q/A pair, summarizing once the memory is too long."""
        previous = self.get(requester_id)
        entry = f"Q: {question}\nA: {answer}".strip()
        combined = f"{previous}\n{entry}" if previous else entry

        if len(combined) < self.summarize_above:
            memory = combined
        elif provider is None:
            memory = combined[-self.fallback_chars:]
        else:
            try:
                summary = await provider.complete(self.summary_prompt, combined)
                memory = summary.strip()[:self.summary_max_chars] or combined[-self.fallback_chars:]
                logger.info(f"[MEMORY] Summarized memory of {requester_id} ({len(combined)} -> {len(memory)} chars)")
            except Exception as e:
                logger.warning(f"[MEMORY] Summary failed for {requester_id}, keeping tail: {e}")
                memory = combined[-self.fallback_chars:]

        self.set(requester_id, memory)
        return memory

    def to_payload(self) -> dict:
        return dict(self.memories)

    def from_payload(self, payload: dict):
        self.memories = {str(k): str(v) for k, v in payload.items()}
