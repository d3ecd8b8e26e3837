"""Shared state for one batch: admitted lineups, fingerprints, stats and cancellation."""

from __future__ import annotations

from dataclasses import asdict, dataclass
import threading
import time
from typing import Callable, Dict, Iterable, List, Optional, Tuple

from nexusdfs.config.roster import RosterRules
from nexusdfs.models.lineup import Lineup

from .exposure import BatchCounters
from .player_pool import PlayerPool
from .scoring import LineupScorer

AdmitCallback = Callable[[int, int], None]


class CancellationToken:
    """Cooperative cancellation flag with an optional monotonic deadline."""

    def __init__(self, deadline_seconds: Optional[float] = None):
        self._event = threading.Event()
        self._deadline = time.monotonic() + deadline_seconds if deadline_seconds else None
        self.reason: Optional[str] = None

    def cancel(self, reason: str = "cancelled") -> None:
        if self.reason is None:
            self.reason = reason
        self._event.set()

    @property
    def cancelled(self) -> bool:
        if self._event.is_set():
            return True
        if self._deadline is not None and time.monotonic() >= self._deadline:
            self.cancel("deadline exceeded")
            return True
        return False


@dataclass
class GenerationStats:
    attempts: int = 0
    discarded: int = 0
    duplicates: int = 0
    repairs: int = 0
    repair_failures: int = 0
    exposure_rejections: int = 0
    backfill_rounds: int = 0
    backfill_swaps: int = 0
    max_trims: int = 0

    def as_dict(self) -> Dict[str, int]:
        return asdict(self)


class BatchContext:
    """Admission point shared by every sampler working on one batch.

    Dedupe by fingerprint and the exposure check happen atomically under the
    counters' lock; the admit callback runs after the lock is released.
    """

    def __init__(
        self,
        pool: PlayerPool,
        rules: RosterRules,
        scorer: LineupScorer,
        counters: BatchCounters,
        token: CancellationToken,
        *,
        target: int,
        on_admit: Optional[AdmitCallback] = None,
    ):
        self.pool = pool
        self.rules = rules
        self.scorer = scorer
        self.counters = counters
        self.token = token
        self.target = target
        self.on_admit = on_admit
        self.stats = GenerationStats()
        self._lock = counters.lock
        self._accepted: List[Lineup] = []
        self._fingerprints: set[Tuple[int, ...]] = set()

    @property
    def accepted(self) -> List[Lineup]:
        with self._lock:
            return list(self._accepted)

    def __len__(self) -> int:
        return len(self._accepted)

    @property
    def full(self) -> bool:
        return len(self._accepted) >= self.target

    @property
    def remaining(self) -> int:
        return max(0, self.target - len(self._accepted))

    @property
    def cancelled(self) -> bool:
        return self.token.cancelled

    def seen(self, lineup: Lineup) -> bool:
        return lineup.fingerprint in self._fingerprints

    def record(self, **increments: int) -> None:
        with self._lock:
            for name, amount in increments.items():
                setattr(self.stats, name, getattr(self.stats, name) + amount)

    def seed(self, lineups: Iterable[Lineup]) -> None:
        """Admit pre-selected lineups without exposure checks."""

        with self._lock:
            for lineup in lineups:
                if lineup.fingerprint in self._fingerprints:
                    continue
                self._fingerprints.add(lineup.fingerprint)
                self._accepted.append(lineup)
                self.counters.add(lineup)

    def submit(self, lineup: Lineup) -> bool:
        """Admit ``lineup`` if the batch has room, it is new and no max is breached."""

        with self._lock:
            if len(self._accepted) >= self.target:
                return False
            fingerprint = lineup.fingerprint
            if fingerprint in self._fingerprints:
                self.stats.duplicates += 1
                return False
            if self.counters.breach(lineup) is not None:
                self.stats.exposure_rejections += 1
                return False
            self._fingerprints.add(fingerprint)
            self._accepted.append(lineup)
            self.counters.add(lineup)
            admitted = len(self._accepted)

        if self.on_admit is not None:
            self.on_admit(admitted, self.target)
        return True

    def discard(self, lineup: Lineup) -> bool:
        with self._lock:
            try:
                self._accepted.remove(lineup)
            except ValueError:
                return False
            self._fingerprints.discard(lineup.fingerprint)
            self.counters.remove(lineup)
            self.stats.max_trims += 1
            return True

    def replace(self, outgoing: Lineup, incoming: Lineup) -> bool:
        """Swap an admitted lineup for a new one if no max or met min breaks."""

        with self._lock:
            if incoming.fingerprint in self._fingerprints:
                return False
            try:
                position = self._accepted.index(outgoing)
            except ValueError:
                return False
            if self.counters.breach(incoming, without=outgoing) is not None:
                return False
            if not self.counters.swap_keeps_minimums(outgoing, incoming):
                return False
            self.counters.remove(outgoing)
            self.counters.add(incoming)
            self._fingerprints.discard(outgoing.fingerprint)
            self._fingerprints.add(incoming.fingerprint)
            self._accepted[position] = incoming
            self.stats.backfill_swaps += 1
            return True
