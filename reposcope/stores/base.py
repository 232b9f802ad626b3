"""Contract for analysis stores and the shared compare-and-swap loop."""

from __future__ import annotations

import copy
from abc import ABC, abstractmethod
from typing import Callable, Optional, Sequence

from ..errors import CollaboratorError
from ..logging import get_logger
from ..models import AnalysisRecord, DirectoryResult, FileResult, PlanState, utc_now

StateMutation = Callable[[PlanState], bool]


class AnalysisStore(ABC):
    """Persists one :class:`AnalysisRecord` per storage key.

    File and directory results are written as independent entries so that
    concurrent work units never overwrite each other; the shared plan state
    is only changed through :meth:`update_state`.
    """

    MAX_STATE_ATTEMPTS = 10

    def __init__(self) -> None:
        self.logger = get_logger("stores")

    @abstractmethod
    def read(self, key: str) -> Optional[AnalysisRecord]:
        """Return the full record for ``key`` or ``None`` if nothing is stored."""

    @abstractmethod
    def read_state(self, key: str) -> Optional[PlanState]:
        """Return only the plan state for ``key``."""

    @abstractmethod
    def write(self, key: str, record: AnalysisRecord) -> None:
        """Replace everything stored under ``key`` with ``record``."""

    @abstractmethod
    def delete(self, key: str) -> bool:
        """Remove the record for ``key``; return False if there was none."""

    @abstractmethod
    def has_directory(self, key: str, directory_path: str) -> bool:
        """Return True when a directory result exists for ``directory_path``."""

    @abstractmethod
    def write_unit(
        self,
        key: str,
        file_results: Sequence[FileResult],
        directory_result: DirectoryResult | None,
    ) -> None:
        """Persist the results of one work unit without touching other units."""

    @abstractmethod
    def _swap_state(self, key: str, expected_version: int, state: PlanState) -> bool:
        """Store ``state`` only if the stored version still equals ``expected_version``."""

    def update_state(self, key: str, mutate: StateMutation) -> Optional[PlanState]:
        """Apply ``mutate`` to the stored plan state with compare-and-swap.

        ``mutate`` edits the state in place and returns whether it changed
        anything. It is re-run against a fresh copy whenever another writer
        got in first. Returns the stored state afterwards, or ``None`` when
        no record exists.
        """
        for attempt in range(1, self.MAX_STATE_ATTEMPTS + 1):
            current = self.read_state(key)
            if current is None:
                return None
            candidate = copy.deepcopy(current)
            if not mutate(candidate):
                return current
            candidate.version = current.version + 1
            candidate.updated_at = utc_now()
            if self._swap_state(key, current.version, candidate):
                return candidate
            self.logger.debug(
                "Plan state for %s changed concurrently (attempt %d); retrying", key, attempt
            )
        raise CollaboratorError(
            f"Plan state for {key} kept changing; gave up after {self.MAX_STATE_ATTEMPTS} attempts"
        )


__all__ = ["AnalysisStore", "StateMutation"]
