"""
Revision session persistence.

Holds at most one active session per (user, document) and the append-only
completion history. Every operation runs in its own transaction; callers get
detached RevisionSessionState snapshots, never live ORM rows.

Concurrency:
- start deletes and inserts in one transaction; the unique constraint on
  (user_id, document_id) turns a racing start into an IntegrityError, which
  is retried (last writer wins).
- revision_sessions carries an optimistic-concurrency version, so an update
  or completion against a row that changed underneath fails with
  ConcurrentModificationError instead of silently overwriting it.
"""

from __future__ import annotations

from collections.abc import Callable, Mapping
from dataclasses import asdict, dataclass, field
from datetime import UTC, datetime
from typing import Any

from loguru import logger
from sqlalchemy import delete, func, select
from sqlalchemy.exc import IntegrityError
from sqlalchemy.orm import Session, sessionmaker
from sqlalchemy.orm.attributes import flag_modified
from sqlalchemy.orm.exc import StaleDataError

from nora.db.database import session_scope
from nora.db.models import RevisionCompletion, RevisionSession
from nora.revision.errors import ConcurrentModificationError, SessionNotFoundError
from nora.revision.expiration import DEFAULT_EXPIRY_SECONDS, expiry_cutoff, is_expired
from nora.revision.phases import INITIAL_PHASE, CustomSettings, RequirementLevel, RevisionPhase

DEFAULT_LOOP_SECONDS = 120

# Fields a caller may change after start. Identity and strictness are fixed
# for the lifetime of the row.
MUTABLE_FIELDS = frozenset(
    {
        "phase",
        "study_time_remaining",
        "pause_time_remaining",
        "loop_time_remaining",
        "current_iteration",
        "user_recall",
        "understood_concepts",
        "missing_concepts",
    }
)


def utcnow() -> datetime:
    """Naive UTC timestamp, the form stored in the database."""
    return datetime.now(UTC).replace(tzinfo=None)


@dataclass(frozen=True)
class RevisionSessionState:
    """Detached snapshot of an active revision session."""

    user_id: int
    document_id: int
    requirement_level: RequirementLevel
    custom_settings: CustomSettings | None
    phase: RevisionPhase
    phase_started_at: datetime
    study_time_remaining: int | None
    pause_time_remaining: int | None
    loop_time_remaining: int
    current_iteration: int
    user_recall: str | None
    understood_concepts: list[dict[str, Any]] = field(default_factory=list)
    missing_concepts: list[dict[str, Any]] = field(default_factory=list)
    started_at: datetime | None = None
    last_activity_at: datetime | None = None
    version: int = 1

    def is_expired(self, now: datetime, expiry_seconds: int = DEFAULT_EXPIRY_SECONDS) -> bool:
        return is_expired(self.last_activity_at, now, expiry_seconds)

    def to_dict(self) -> dict[str, Any]:
        """Convert to a JSON-friendly dictionary."""
        data = asdict(self)
        data["requirement_level"] = self.requirement_level.value
        data["custom_settings"] = (
            self.custom_settings.model_dump() if self.custom_settings else None
        )
        data["phase"] = self.phase.value
        for key in ("phase_started_at", "started_at", "last_activity_at"):
            value = data[key]
            data[key] = value.isoformat() if value else None
        return data

    @classmethod
    def from_row(cls, row: RevisionSession) -> RevisionSessionState:
        return cls(
            user_id=row.user_id,
            document_id=row.document_id,
            requirement_level=RequirementLevel(row.requirement_level),
            custom_settings=(
                CustomSettings.model_validate(row.custom_settings) if row.custom_settings else None
            ),
            phase=RevisionPhase(row.phase),
            phase_started_at=row.phase_started_at,
            study_time_remaining=row.study_time_remaining,
            pause_time_remaining=row.pause_time_remaining,
            loop_time_remaining=row.loop_time_remaining,
            current_iteration=row.current_iteration,
            user_recall=row.user_recall,
            understood_concepts=list(row.understood_concepts or []),
            missing_concepts=list(row.missing_concepts or []),
            started_at=row.started_at,
            last_activity_at=row.last_activity_at,
            version=row.version,
        )


@dataclass(frozen=True)
class CompletionRecord:
    """Completion written when a session ends successfully (or is forced to)."""

    user_id: int
    document_id: int
    iterations_count: int
    completed_at: datetime


class RevisionSessionStore:
    """
    Manages revision session rows and completion history.

    Args:
        session_factory: SQLAlchemy sessionmaker (defaults to the app's SessionLocal)
        clock: Callable returning the current naive-UTC time
        start_retry_attempts: Attempts for start when a concurrent start collides
    """

    def __init__(
        self,
        session_factory: sessionmaker | None = None,
        clock: Callable[[], datetime] | None = None,
        start_retry_attempts: int = 3,
    ):
        self._session_factory = session_factory
        self._clock = clock or utcnow
        self.start_retry_attempts = max(1, start_retry_attempts)

    def now(self) -> datetime:
        return self._clock()

    # ========================================
    # Reads
    # ========================================

    def get(self, user_id: int, document_id: int) -> RevisionSessionState | None:
        """Return the active session for the pair, or None."""
        with session_scope(self._session_factory) as db:
            row = self._find(db, user_id, document_id)
            return RevisionSessionState.from_row(row) if row else None

    def count_completions(self, user_id: int, document_id: int) -> int:
        """Number of completion records for the pair."""
        with session_scope(self._session_factory) as db:
            count = db.scalar(
                select(func.count())
                .select_from(RevisionCompletion)
                .where(
                    RevisionCompletion.user_id == user_id,
                    RevisionCompletion.document_id == document_id,
                )
            )
            return int(count or 0)

    # ========================================
    # Writes
    # ========================================

    def start(
        self,
        user_id: int,
        document_id: int,
        requirement_level: RequirementLevel = RequirementLevel.INTERMEDIATE,
        custom_settings: CustomSettings | None = None,
        loop_time_remaining: int = DEFAULT_LOOP_SECONDS,
    ) -> RevisionSessionState:
        """
        Replace any session for the pair with a fresh one at iteration 1.

        Raises:
            ConcurrentModificationError: concurrent starts kept colliding
        """
        last_error: IntegrityError | None = None

        for attempt in range(1, self.start_retry_attempts + 1):
            now = self._clock()
            try:
                with session_scope(self._session_factory) as db:
                    replaced = db.execute(
                        delete(RevisionSession).where(
                            RevisionSession.user_id == user_id,
                            RevisionSession.document_id == document_id,
                        )
                    ).rowcount
                    row = RevisionSession(
                        user_id=user_id,
                        document_id=document_id,
                        requirement_level=RequirementLevel(requirement_level).value,
                        custom_settings=custom_settings.model_dump() if custom_settings else None,
                        phase=INITIAL_PHASE.value,
                        phase_started_at=now,
                        study_time_remaining=None,
                        pause_time_remaining=None,
                        loop_time_remaining=loop_time_remaining,
                        current_iteration=1,
                        user_recall=None,
                        understood_concepts=None,
                        missing_concepts=None,
                        started_at=now,
                        last_activity_at=now,
                    )
                    db.add(row)
                    db.flush()
                    state = RevisionSessionState.from_row(row)

                if replaced:
                    logger.info(
                        f"Revision session replaced for user={user_id} document={document_id}"
                    )
                else:
                    logger.info(
                        f"Revision session started for user={user_id} document={document_id}"
                    )
                return state

            except IntegrityError as e:
                last_error = e
                logger.warning(
                    f"Concurrent start for user={user_id} document={document_id} "
                    f"(attempt {attempt}/{self.start_retry_attempts})"
                )

        raise ConcurrentModificationError(
            f"Could not start revision session for document {document_id}: {last_error}"
        )

    def update(
        self,
        user_id: int,
        document_id: int,
        /,
        *,
        restart_phase: bool = False,
        expected: Mapping[str, Any] | None = None,
        **changes: Any,
    ) -> RevisionSessionState:
        """
        Apply field changes to the active session and refresh last_activity_at.

        phase_started_at moves to now when the phase changes, or always when
        restart_phase is set (a new iteration starts a fresh phase).

        Args:
            expected: Column values the row must still hold; any mismatch
                means a concurrent change and nothing is written.

        Raises:
            SessionNotFoundError: no active session
            ConcurrentModificationError: expected values differ, or the row
                was modified concurrently
        """
        unknown = set(changes) - MUTABLE_FIELDS
        if unknown:
            raise ValueError(f"Cannot update revision session fields: {sorted(unknown)}")

        try:
            with session_scope(self._session_factory) as db:
                row = self._require(db, user_id, document_id)

                self._check_expected(row, expected, document_id)

                now = self._clock()
                if "phase" in changes:
                    new_phase = RevisionPhase(changes.pop("phase")).value
                    if new_phase != row.phase:
                        restart_phase = True
                    row.phase = new_phase
                if restart_phase:
                    row.phase_started_at = now

                for key, value in changes.items():
                    setattr(row, key, value)
                row.last_activity_at = now
                # Always emit the UPDATE so the version check runs on no-op writes
                flag_modified(row, "last_activity_at")

                db.flush()
                return RevisionSessionState.from_row(row)

        except StaleDataError as e:
            raise ConcurrentModificationError(
                f"Revision session for document {document_id} was modified concurrently"
            ) from e

    def touch(self, user_id: int, document_id: int) -> RevisionSessionState:
        """Refresh last_activity_at without changing anything else."""
        return self.update(user_id, document_id)

    def delete(self, user_id: int, document_id: int) -> bool:
        """Delete the active session. Idempotent; returns whether a row existed."""
        with session_scope(self._session_factory) as db:
            deleted = db.execute(
                delete(RevisionSession).where(
                    RevisionSession.user_id == user_id,
                    RevisionSession.document_id == document_id,
                )
            ).rowcount
        if deleted:
            logger.info(f"Revision session deleted for user={user_id} document={document_id}")
        return bool(deleted)

    def complete(
        self,
        user_id: int,
        document_id: int,
        /,
        *,
        expected: Mapping[str, Any] | None = None,
        on_complete: Callable[[Session], None] | None = None,
    ) -> CompletionRecord | None:
        """
        Move the active session to history.

        Appends a completion with the session's current iteration and deletes
        the session in the same transaction. Returns None when no session exists.

        Args:
            expected: Column values the row must still hold (e.g. its version)
            on_complete: Extra write run in the same transaction before the
                session is removed; an exception from it rolls everything back.

        Raises:
            ConcurrentModificationError: the session changed while completing
        """
        try:
            with session_scope(self._session_factory) as db:
                row = self._find(db, user_id, document_id)
                if row is None:
                    return None
                self._check_expected(row, expected, document_id)

                record = CompletionRecord(
                    user_id=user_id,
                    document_id=document_id,
                    iterations_count=row.current_iteration,
                    completed_at=self._clock(),
                )
                if on_complete is not None:
                    on_complete(db)
                db.add(
                    RevisionCompletion(
                        user_id=record.user_id,
                        document_id=record.document_id,
                        iterations_count=record.iterations_count,
                        completed_at=record.completed_at,
                    )
                )
                db.delete(row)
                db.flush()

        except StaleDataError as e:
            raise ConcurrentModificationError(
                f"Revision session for document {document_id} was modified while completing"
            ) from e

        logger.info(
            f"Revision completed for user={user_id} document={document_id} "
            f"after {record.iterations_count} iteration(s)"
        )
        return record

    def purge_expired(self, expiry_seconds: int = DEFAULT_EXPIRY_SECONDS) -> int:
        """Delete every expired session. Returns the number of rows removed."""
        cutoff = expiry_cutoff(self._clock(), expiry_seconds)
        with session_scope(self._session_factory) as db:
            removed = db.execute(
                delete(RevisionSession).where(RevisionSession.last_activity_at < cutoff)
            ).rowcount
        if removed:
            logger.info(f"Purged {removed} expired revision session(s)")
        return int(removed or 0)

    # ========================================
    # Helpers
    # ========================================

    @staticmethod
    def _find(db: Session, user_id: int, document_id: int) -> RevisionSession | None:
        return db.scalar(
            select(RevisionSession).where(
                RevisionSession.user_id == user_id,
                RevisionSession.document_id == document_id,
            )
        )

    @staticmethod
    def _check_expected(
        row: RevisionSession, expected: Mapping[str, Any] | None, document_id: int
    ) -> None:
        for key, value in (expected or {}).items():
            if getattr(row, key) != value:
                raise ConcurrentModificationError(
                    f"Revision session for document {document_id} changed ({key})"
                )

    def _require(self, db: Session, user_id: int, document_id: int) -> RevisionSession:
        row = self._find(db, user_id, document_id)
        if row is None:
            raise SessionNotFoundError(user_id, document_id)
        return row
