"""In-memory storage for generated lineups, keyed by session."""

from __future__ import annotations

from dataclasses import dataclass
from datetime import datetime, timezone
import threading
from typing import Dict, Iterable, List, Optional

from nexusdfs.models.lineup import LineupResult


@dataclass(frozen=True)
class StoredLineup:
    session_id: str
    saved_at: datetime
    lineup: LineupResult


class LineupNotFound(KeyError):
    def __init__(self, lineup_ids: List[str]):
        super().__init__(", ".join(lineup_ids))
        self.lineup_ids = lineup_ids


class LineupStore:
    """Lineups saved from generations so they can be exported later.

    Lineup ids are unique across sessions; closing a session drops its
    lineups.
    """

    def __init__(self) -> None:
        self._lock = threading.Lock()
        self._lineups: Dict[str, StoredLineup] = {}
        self._by_session: Dict[str, List[str]] = {}

    def save(self, session_id: str, lineups: Iterable[LineupResult]) -> int:
        now = datetime.now(timezone.utc)
        saved = 0
        with self._lock:
            ids = self._by_session.setdefault(session_id, [])
            for lineup in lineups:
                if lineup.lineup_id not in self._lineups:
                    ids.append(lineup.lineup_id)
                self._lineups[lineup.lineup_id] = StoredLineup(session_id, now, lineup)
                saved += 1
        return saved

    def get_many(self, lineup_ids: Iterable[str], session_id: Optional[str] = None) -> List[LineupResult]:
        """Return lineups in the requested order; raise ``LineupNotFound`` for unknown ids."""

        found: List[LineupResult] = []
        missing: List[str] = []
        with self._lock:
            for lineup_id in lineup_ids:
                stored = self._lineups.get(lineup_id)
                if stored is None or (session_id is not None and stored.session_id != session_id):
                    missing.append(lineup_id)
                    continue
                found.append(stored.lineup)
        if missing:
            raise LineupNotFound(missing)
        return found

    def drop_session(self, session_id: str) -> int:
        with self._lock:
            ids = self._by_session.pop(session_id, [])
            for lineup_id in ids:
                self._lineups.pop(lineup_id, None)
            return len(ids)

    def __len__(self) -> int:
        return len(self._lineups)


__all__ = ["LineupNotFound", "LineupStore", "StoredLineup"]
