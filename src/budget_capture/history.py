"""Bounded, most-recent-first history of extracted budgets."""

from __future__ import annotations

import json
import os
import tempfile
import threading
from typing import Any, Dict, List, Optional

from .domain.models import BudgetDocument, HistoryEntry
from .logging import get_logger

LOG = get_logger("history")

HISTORY_KEY = "budget_history"
HISTORY_LIMIT = 20


class HistoryStore:
    """History persisted as one namespaced key inside a JSON file.

    The file holds ``{key: [entry, ...]}`` with the newest entry first. A
    missing or unreadable file reads as an empty history.
    """

    def __init__(self, path: str, *, key: str = HISTORY_KEY, limit: int = HISTORY_LIMIT) -> None:
        self.path = os.path.abspath(path)
        self.key = key
        self.limit = limit
        self._lock = threading.Lock()

    # ---------------- storage ----------------
    def _read_all(self) -> Dict[str, Any]:
        if not os.path.isfile(self.path):
            return {}
        try:
            with open(self.path, "r", encoding="utf-8") as f:
                data = json.load(f)
        except (OSError, json.JSONDecodeError) as exc:
            LOG.error(f"Error parsing history at {self.path}: {exc}")
            return {}
        return data if isinstance(data, dict) else {}

    def _load(self) -> List[HistoryEntry]:
        raw = self._read_all().get(self.key) or []
        if not isinstance(raw, list):
            LOG.warning(f"History key {self.key!r} is not a list; ignoring it")
            return []
        entries: List[HistoryEntry] = []
        for item in raw:
            try:
                entries.append(HistoryEntry.from_dict(item))
            except (KeyError, TypeError, ValueError, AttributeError, ArithmeticError) as exc:
                LOG.warning(f"Skipping unreadable history entry: {exc}")
        return entries

    def _save(self, entries: List[HistoryEntry]) -> None:
        data = self._read_all()
        data[self.key] = [e.to_dict() for e in entries]
        folder = os.path.dirname(self.path)
        os.makedirs(folder, exist_ok=True)
        fd, tmp = tempfile.mkstemp(prefix=".history-", suffix=".json", dir=folder)
        try:
            with os.fdopen(fd, "w", encoding="utf-8") as f:
                json.dump(data, f, ensure_ascii=False, indent=2)
            os.replace(tmp, self.path)
        except BaseException:
            if os.path.exists(tmp):
                os.unlink(tmp)
            raise

    # ---------------- public API ----------------
    def list(self) -> List[HistoryEntry]:
        with self._lock:
            return self._load()

    def get(self, entry_id: str) -> Optional[HistoryEntry]:
        for entry in self.list():
            if entry.id == entry_id:
                return entry
        return None

    def append(self, document: BudgetDocument) -> HistoryEntry:
        entry = HistoryEntry.from_document(document)
        with self._lock:
            entries = [e for e in self._load() if e.id != entry.id]
            entries.insert(0, entry)
            evicted = entries[self.limit:]
            entries = entries[: self.limit]
            self._save(entries)
        if evicted:
            LOG.info(f"History full; evicted {len(evicted)} oldest entr{'y' if len(evicted) == 1 else 'ies'}")
        LOG.debug(f"History now holds {len(entries)} entries")
        return entry

    def remove(self, entry_id: str) -> bool:
        with self._lock:
            entries = self._load()
            kept = [e for e in entries if e.id != entry_id]
            if len(kept) == len(entries):
                return False
            self._save(kept)
        LOG.info(f"Removed {entry_id} from history")
        return True

    def clear(self) -> None:
        with self._lock:
            self._save([])
