"""
Scheduling conflict detection.

Splits candidate dates into those the client is free for and those already
taken by an existing session. The overlap query itself belongs to the
session store; this module only owns the partitioning.
"""

import logging
from dataclasses import dataclass
from datetime import datetime
from uuid import UUID

from .errors import ConflictCheckError
from .repositories import SessionRepository

logger = logging.getLogger(__name__)


@dataclass(frozen=True)
class SchedulingConflict:
    """A candidate date blocked by an existing session."""
    date: datetime
    conflicting_session_id: UUID
    reason: str


@dataclass(frozen=True)
class ConflictCheckResult:
    """
    Disjoint partition of the checked dates.

    Both sides keep the order of the input dates.
    """
    conflicts: tuple[SchedulingConflict, ...] = ()
    available_dates: tuple[datetime, ...] = ()

    @property
    def conflicting_dates(self) -> tuple[datetime, ...]:
        return tuple(conflict.date for conflict in self.conflicts)


class ConflictChecker:
    """Checks candidate dates against a client's existing schedule."""

    def __init__(self, sessions: SessionRepository) -> None:
        self._sessions = sessions

    def check(
        self,
        dates: list[datetime],
        client_id: str,
        duration_minutes: int,
    ) -> ConflictCheckResult:
        """
        Partition `dates` into conflicts and available dates.

        A date conflicts when a session of the same client overlaps the
        window [date, date + duration_minutes). Any store failure aborts
        the whole check with ConflictCheckError.
        """
        conflicts: list[SchedulingConflict] = []
        available: list[datetime] = []

        for date in dates:
            try:
                existing = self._sessions.find_conflicting_session(
                    client_id, date, duration_minutes
                )
            except Exception as e:
                logger.error(
                    "Conflict check failed",
                    extra={
                        "client_id": client_id,
                        "date": date.isoformat(),
                        "error": str(e),
                    }
                )
                raise ConflictCheckError(client_id, e) from e

            if existing is None:
                available.append(date)
                continue

            conflicts.append(SchedulingConflict(
                date=date,
                conflicting_session_id=existing.id,
                reason=(
                    f"Client already has a {existing.status.value} session "
                    f"at {existing.scheduled_at.isoformat(timespec='minutes')} "
                    f"({existing.duration_minutes} min)"
                ),
            ))

        if conflicts:
            logger.info(
                "Scheduling conflicts found",
                extra={
                    "client_id": client_id,
                    "checked": len(dates),
                    "conflicts": len(conflicts),
                }
            )

        return ConflictCheckResult(
            conflicts=tuple(conflicts),
            available_dates=tuple(available),
        )
