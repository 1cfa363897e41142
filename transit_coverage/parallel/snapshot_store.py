"""
In-memory snapshot slots, one per (owner, analysis type).

ARCHITECTURAL OVERVIEW:
=======================
Responsibility: Coordinate runs per owner and publish their snapshots.

- A per-owner lock is acquired non-blocking: a second concurrent run for the
  same owner raises ConflictingRunError instead of queueing
- The new snapshot replaces the slot only after the run completed; a failed
  or cancelled run leaves the previous snapshot untouched
- Snapshots are immutable, so readers never see a half-written result

For Navigation: Use VS Code outline (Ctrl+Shift+O)
"""

import logging
import threading
from typing import Any, Callable, Dict, Optional, Tuple

from transit_coverage.models.data_models import AnalysisSnapshot
from transit_coverage.models.errors import ConflictingRunError

logger = logging.getLogger("TransitCoverage.SnapshotStore")

SlotKey = Tuple[str, str]


class SnapshotStore:
    """
    Latest AnalysisSnapshot per (owner_id, analysis_type).

    Example:
        store = SnapshotStore()
        snapshot = store.run_analysis(
            "planner-7", compute_coverage, stations, neighborhoods, config=CONFIG
        )
        latest = store.get_latest("planner-7")
    """

    def __init__(self) -> None:
        self._slots: Dict[SlotKey, AnalysisSnapshot] = {}
        self._owner_locks: Dict[str, threading.Lock] = {}
        # Guards the two dicts above, never held while a run executes
        self._registry_lock = threading.Lock()

    def _owner_lock(self, owner_id: str) -> threading.Lock:
        with self._registry_lock:
            lock = self._owner_locks.get(owner_id)
            if lock is None:
                lock = threading.Lock()
                self._owner_locks[owner_id] = lock
            return lock

    def is_running(self, owner_id: str) -> bool:
        """True while a run for ``owner_id`` holds its lock."""
        return self._owner_lock(owner_id).locked()

    def run_analysis(
        self,
        owner_id: str,
        analysis_fn: Callable[..., AnalysisSnapshot],
        *args: Any,
        analysis_type: str = "coverage",
        **kwargs: Any,
    ) -> AnalysisSnapshot:
        """
        Run ``analysis_fn`` for an owner and publish its snapshot.

        Args:
            owner_id: Owner whose slot is written
            analysis_fn: Callable returning an AnalysisSnapshot
                (compute_coverage or compute_coverage_cached)
            *args: Positional arguments for analysis_fn
            analysis_type: Slot name (default "coverage")
            **kwargs: Keyword arguments for analysis_fn

        Returns:
            The published snapshot (metadata attributed to owner_id)

        Raises:
            ConflictingRunError: A run for this owner is already in progress
            Any error from analysis_fn (the previous snapshot is kept)
        """
        lock = self._owner_lock(owner_id)
        if not lock.acquire(blocking=False):
            logger.warning(f"⚠️ Rejected concurrent run for owner '{owner_id}'")
            raise ConflictingRunError(owner_id, analysis_type)

        try:
            logger.info(f"🔒 Run started for owner '{owner_id}' ({analysis_type})")
            snapshot = analysis_fn(*args, **kwargs)
            snapshot = snapshot.with_owner(owner_id)
            self.publish(owner_id, snapshot, analysis_type)
            return snapshot
        finally:
            lock.release()

    def publish(
        self,
        owner_id: str,
        snapshot: AnalysisSnapshot,
        analysis_type: str = "coverage",
    ) -> None:
        """Atomically replace the slot for (owner_id, analysis_type)."""
        with self._registry_lock:
            self._slots[(owner_id, analysis_type)] = snapshot
        logger.info(
            f"📸 Published snapshot for '{owner_id}': {len(snapshot.results)} results"
        )

    def get_latest(
        self, owner_id: str, analysis_type: str = "coverage"
    ) -> Optional[AnalysisSnapshot]:
        """Latest published snapshot, or None if the owner has none."""
        with self._registry_lock:
            return self._slots.get((owner_id, analysis_type))

    def clear(self, owner_id: str, analysis_type: Optional[str] = None) -> int:
        """
        Remove an owner's snapshots.

        Args:
            owner_id: Owner whose slots are cleared
            analysis_type: Only this slot (None = every slot of the owner)

        Returns:
            Number of snapshots removed
        """
        with self._registry_lock:
            keys = [
                key
                for key in self._slots
                if key[0] == owner_id
                and (analysis_type is None or key[1] == analysis_type)
            ]
            for key in keys:
                del self._slots[key]
        if keys:
            logger.info(f"🗑️ Cleared {len(keys)} snapshot(s) for '{owner_id}'")
        return len(keys)


__all__ = ["SnapshotStore"]
