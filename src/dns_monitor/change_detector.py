"""
Change Detector for the DNS monitor.

Compares a fresh consensus against the stored history of the same
(domain, record type) key and writes the new observation back.

Per key there are two states: unseen (no history) and tracked. The first
successful check of an unseen key records a baseline and never reports a
change. Every later check compares as multisets and overwrites the stored
record, whether or not the values changed.
"""

from dataclasses import dataclass
from typing import Optional

from .audit_logger import AuditLogger
from .consensus import values_match
from .enums import LogLevel, RecordType
from .history_store import HistoryStore
from .models import ConsensusResult, HistoryRecord


@dataclass
class ChangeOutcome:
    """Result of comparing a consensus against history."""

    is_first_check: bool
    has_changed: bool
    previous_values: list[str]
    current_values: list[str]
    history_written: bool


class ChangeDetector:
    """Tracks record history per (domain, record type) and detects changes."""

    def __init__(
        self,
        history_store: HistoryStore,
        logger: Optional[AuditLogger] = None,
    ) -> None:
        self._history = history_store
        self._logger = logger

    def evaluate(
        self,
        domain: str,
        record_type: RecordType,
        consensus: ConsensusResult,
        observed_at: str,
    ) -> ChangeOutcome:
        """
        Decide is_first_check / has_changed and persist the observation.

        When every resolver failed, the result is flagged as changed with no
        current values and history is left untouched. An empty answer never
        replaces a non-empty stored record.

        Raises:
            PersistenceError: If the history store fails
        """
        previous = self._history.get(domain, record_type)
        previous_values = list(previous.values) if previous else []

        if consensus.all_failed:
            self._log(
                LogLevel.WARN,
                f"All resolvers failed for {domain}, history left unchanged",
                {"record_type": record_type.value, "resolvers": consensus.failed_resolvers},
            )
            return ChangeOutcome(
                is_first_check=False,
                has_changed=True,
                previous_values=previous_values,
                current_values=[],
                history_written=False,
            )

        current_values = list(consensus.values)

        if previous is None:
            is_first_check = True
            has_changed = False
        else:
            is_first_check = False
            has_changed = not values_match(current_values, previous_values)

        if not current_values and previous_values:
            self._log(
                LogLevel.WARN,
                f"Empty answer for {domain}, keeping stored record",
                {"record_type": record_type.value, "stored": previous_values},
            )
            written = False
        else:
            self._history.put(HistoryRecord(
                domain=domain,
                record_type=record_type,
                values=current_values,
                observed_at=observed_at,
            ))
            written = True

        return ChangeOutcome(
            is_first_check=is_first_check,
            has_changed=has_changed,
            previous_values=previous_values,
            current_values=current_values,
            history_written=written,
        )

    def _log(self, level: LogLevel, message: str, data: dict) -> None:
        if self._logger:
            self._logger.log(level, "ChangeDetector", message, data)
