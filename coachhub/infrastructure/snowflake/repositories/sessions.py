"""
Snowflake repository for coaching sessions.

Only the two operations the generation engine needs: create a pending
session, and find an existing session that overlaps a proposed slot.
"""

import logging
from datetime import datetime, timedelta
from typing import Optional
from uuid import UUID

from coachhub.core.scheduling.models import CoachingSession, SessionStatus

from ..client import SnowflakeConnection

logger = logging.getLogger(__name__)


class SnowflakeSessionRepository:
    """Coaching sessions stored in the `coaching_sessions` table."""

    def __init__(self, connection: SnowflakeConnection) -> None:
        self._conn = connection

    def create_session(self, session: CoachingSession) -> CoachingSession:
        cursor = self._conn.cursor()

        try:
            cursor.execute("""
                INSERT INTO coaching_sessions (
                    session_id, coach_id, client_id, scheduled_at,
                    duration_minutes, status, notes, created_at
                ) VALUES (%s, %s, %s, %s, %s, %s, %s, %s)
            """, (
                str(session.id), session.coach_id, session.client_id,
                session.scheduled_at, session.duration_minutes,
                session.status.value, session.notes, session.created_at,
            ))

            self._conn.commit()
            return session

        except Exception as e:
            logger.error(
                "Failed to create session",
                extra={"session_id": str(session.id), "error": str(e)}
            )
            raise
        finally:
            cursor.close()

    def find_conflicting_session(
        self,
        client_id: str,
        starts_at: datetime,
        duration_minutes: int,
    ) -> Optional[CoachingSession]:
        """
        First non-cancelled session of the client overlapping
        [starts_at, starts_at + duration_minutes).
        """
        ends_at = starts_at + timedelta(minutes=duration_minutes)
        cursor = self._conn.cursor()

        try:
            cursor.execute("""
                SELECT
                    session_id,
                    coach_id,
                    client_id,
                    scheduled_at,
                    duration_minutes,
                    status,
                    notes,
                    created_at
                FROM coaching_sessions
                WHERE client_id = %s
                  AND status <> %s
                  AND scheduled_at < %s
                  AND DATEADD(minute, duration_minutes, scheduled_at) > %s
                ORDER BY scheduled_at
                LIMIT 1
            """, (client_id, SessionStatus.CANCELLED.value, ends_at, starts_at))

            row = cursor.fetchone()
            if not row:
                return None

            return CoachingSession(
                id=UUID(row[0]),
                coach_id=row[1],
                client_id=row[2],
                scheduled_at=row[3],
                duration_minutes=row[4],
                status=SessionStatus(row[5]),
                notes=row[6] or "",
                created_at=row[7],
            )

        finally:
            cursor.close()
