from sqlalchemy import (
    Column, String, DateTime, ForeignKey, Text, Float, Integer, JSON, Boolean,
    UniqueConstraint, Index, CheckConstraint,
)
from sqlalchemy.ext.hybrid import hybrid_property
from sqlalchemy.types import TypeDecorator
from datetime import datetime, timezone
import uuid

from behavioral_sandbox.database import Base


def _uuid() -> str:
    return str(uuid.uuid4())


def utcnow() -> datetime:
    return datetime.now(timezone.utc)


class UTCDateTime(TypeDecorator):
    """
    Timezone-aware UTC datetime on every backend.

    SQLite drops tzinfo, so values are stored as naive UTC there and
    re-tagged as UTC on load.
    """
    impl = DateTime
    cache_ok = True

    def __init__(self):
        super().__init__(timezone=True)

    def process_bind_param(self, value, dialect):
        if value is None:
            return None
        if value.tzinfo is None:
            value = value.replace(tzinfo=timezone.utc)
        value = value.astimezone(timezone.utc)
        if dialect.name == "sqlite":
            return value.replace(tzinfo=None)
        return value

    def process_result_value(self, value, dialect):
        if value is None:
            return None
        if value.tzinfo is None:
            return value.replace(tzinfo=timezone.utc)
        return value.astimezone(timezone.utc)


# =============================================================================
# STAGE 0 - external event log (read-only here)
# =============================================================================

class BehavioralEvent(Base):
    """
    Immutable activity record written by the host application.

    The sandbox only reads these rows; `superseded_by` marks a logical
    replacement and such rows are ignored by every computation.
    """
    __tablename__ = "behavioral_events"

    id = Column(String(36), primary_key=True, default=_uuid)
    user_id = Column(String(36), nullable=False, index=True)
    event_type = Column(String, nullable=False)
    occurred_at = Column(UTCDateTime(), nullable=False)
    duration_seconds = Column(Float, nullable=True)
    context = Column(JSON, nullable=False, default=dict)
    event_data = Column(JSON, nullable=False, default=dict)
    user_note = Column(Text, nullable=True)
    user_tags = Column(JSON, nullable=False, default=list)
    superseded_by = Column(String(36), ForeignKey("behavioral_events.id"), nullable=True)
    created_at = Column(UTCDateTime(), default=utcnow)

    __table_args__ = (
        Index("idx_behavioral_events_user_time", "user_id", "occurred_at"),
    )


# =============================================================================
# STAGE 1 - consent, candidate signals, audit
# =============================================================================

class UserConsentFlag(Base):
    """
    Compute consent per (user, consent_key).

    No row = no consent. Never default a missing row to enabled.
    """
    __tablename__ = "user_consent_flags"

    id = Column(String(36), primary_key=True, default=_uuid)
    user_id = Column(String(36), nullable=False, index=True)
    consent_key = Column(String, nullable=False)
    is_enabled = Column(Boolean, nullable=False, default=False)
    granted_at = Column(UTCDateTime(), nullable=True)
    revoked_at = Column(UTCDateTime(), nullable=True)
    created_at = Column(UTCDateTime(), default=utcnow)
    updated_at = Column(UTCDateTime(), default=utcnow, onupdate=utcnow)

    __table_args__ = (
        UniqueConstraint("user_id", "consent_key", name="user_consent_unique"),
    )


class CandidateSignal(Base):
    """
    Append-only computed signal with full provenance.

    Rows are never edited after insert; the only allowed change is a
    forward status transition (candidate -> invalidated | deleted),
    performed by domain.signal_lifecycle.
    """
    __tablename__ = "candidate_signals"

    signal_id = Column(String(36), primary_key=True, default=_uuid)
    user_id = Column(String(36), nullable=False, index=True)
    signal_key = Column(String, nullable=False)
    signal_version = Column(String, nullable=False)
    time_range_start = Column(UTCDateTime(), nullable=False)
    time_range_end = Column(UTCDateTime(), nullable=False)
    value_json = Column(JSON, nullable=False)
    confidence = Column(Float, nullable=False)
    provenance_event_ids = Column(JSON, nullable=False)
    provenance_hash = Column(String, nullable=False)
    parameters_json = Column(JSON, nullable=False, default=dict)
    computed_at = Column(UTCDateTime(), nullable=False, default=utcnow)
    _status = Column("status", String, nullable=False, default="candidate")
    invalidated_at = Column(UTCDateTime(), nullable=True)
    invalidated_reason = Column(Text, nullable=True)
    created_at = Column(UTCDateTime(), default=utcnow)

    __table_args__ = (
        CheckConstraint("time_range_start <= time_range_end", name="time_range_valid"),
        CheckConstraint("confidence >= 0 AND confidence <= 1", name="confidence_range"),
        CheckConstraint(
            "status IN ('candidate', 'invalidated', 'deleted')", name="signal_status_valid"
        ),
        CheckConstraint(
            "status != 'invalidated' OR invalidated_reason IS NOT NULL",
            name="status_invalidated_reason",
        ),
        Index("idx_candidate_signals_user_key_time", "user_id", "signal_key", "computed_at"),
        Index("idx_candidate_signals_time_range", "user_id", "time_range_start", "time_range_end"),
        Index("idx_candidate_signals_provenance_hash", "user_id", "signal_key", "provenance_hash"),
    )

    # Direct status assignment is FORBIDDEN
    # Use SignalLifecycle.transition() instead
    @hybrid_property
    def status(self):
        """Read-only status - use SignalLifecycle.transition() to change"""
        return self._status

    @status.setter
    def status(self, value):
        raise RuntimeError(
            f"DIRECT STATUS ASSIGNMENT BLOCKED: signal.status = '{value}'. "
            f"Use SignalLifecycle.transition(signal, '{value}', reason=...)"
        )


class SignalAuditLog(Base):
    """Append-only trail of consent changes and signal lifecycle events"""
    __tablename__ = "signal_audit_log"

    audit_id = Column(String(36), primary_key=True, default=_uuid)
    user_id = Column(String(36), nullable=False)
    signal_id = Column(
        String(36), ForeignKey("candidate_signals.signal_id", ondelete="SET NULL"), nullable=True
    )
    action = Column(String, nullable=False)
    actor = Column(String, nullable=False)
    reason = Column(Text, nullable=True)
    audit_metadata = Column("metadata", JSON, nullable=False, default=dict)
    created_at = Column(UTCDateTime(), default=utcnow)

    __table_args__ = (
        CheckConstraint(
            "action IN ('computed', 'invalidated', 'deleted', 'consent_granted', 'consent_revoked')",
            name="action_valid",
        ),
        Index("idx_signal_audit_log_user_id", "user_id", "created_at"),
        Index("idx_signal_audit_log_signal_id", "signal_id"),
    )


# =============================================================================
# STAGE 2 - display consent, Safe Mode, feedback, display log
# =============================================================================

class InsightDisplayConsent(Base):
    """Consent to VIEW a signal kind; independent of compute consent"""
    __tablename__ = "insight_display_consent"

    id = Column(String(36), primary_key=True, default=_uuid)
    user_id = Column(String(36), nullable=False, index=True)
    signal_key = Column(String, nullable=False)
    display_enabled = Column(Boolean, nullable=False, default=False)
    granted_at = Column(UTCDateTime(), nullable=True)
    revoked_at = Column(UTCDateTime(), nullable=True)
    prefer_collapsed = Column(Boolean, nullable=False, default=False)
    prefer_hidden = Column(Boolean, nullable=False, default=False)
    created_at = Column(UTCDateTime(), default=utcnow)
    updated_at = Column(UTCDateTime(), default=utcnow, onupdate=utcnow)

    __table_args__ = (
        UniqueConstraint("user_id", "signal_key", name="display_consent_unique"),
    )


class SafeModeState(Base):
    """Per-user emergency brake: when enabled, nothing is displayable"""
    __tablename__ = "safe_mode_state"

    id = Column(String(36), primary_key=True, default=_uuid)
    user_id = Column(String(36), nullable=False, unique=True)
    is_enabled = Column(Boolean, nullable=False, default=False)
    enabled_at = Column(UTCDateTime(), nullable=True)
    disabled_at = Column(UTCDateTime(), nullable=True)
    activation_reason = Column(Text, nullable=True)
    activation_count = Column(Integer, nullable=False, default=0)
    last_toggled_at = Column(UTCDateTime(), default=utcnow)
    created_at = Column(UTCDateTime(), default=utcnow)
    updated_at = Column(UTCDateTime(), default=utcnow, onupdate=utcnow)


class InsightFeedback(Base):
    """Passive user reaction; never read back into computation"""
    __tablename__ = "insight_feedback"

    feedback_id = Column(String(36), primary_key=True, default=_uuid)
    user_id = Column(String(36), nullable=False)
    signal_id = Column(
        String(36), ForeignKey("candidate_signals.signal_id", ondelete="CASCADE"), nullable=False
    )
    signal_key = Column(String, nullable=False)
    feedback_type = Column(String, nullable=False)
    reason = Column(Text, nullable=True)
    displayed_at = Column(UTCDateTime(), nullable=True)
    feedback_at = Column(UTCDateTime(), default=utcnow)
    ui_context = Column(JSON, nullable=False, default=dict)
    created_at = Column(UTCDateTime(), default=utcnow)

    __table_args__ = (
        CheckConstraint(
            "feedback_type IN ('not_helpful', 'helpful', 'confusing', 'concerning')",
            name="feedback_type_valid",
        ),
        Index("idx_insight_feedback_user_id", "user_id", "feedback_at"),
    )


class InsightDisplayLog(Base):
    """Transparency log of what was shown, when, and where"""
    __tablename__ = "insight_display_log"

    log_id = Column(String(36), primary_key=True, default=_uuid)
    user_id = Column(String(36), nullable=False)
    signal_id = Column(
        String(36), ForeignKey("candidate_signals.signal_id", ondelete="CASCADE"), nullable=False
    )
    signal_key = Column(String, nullable=False)
    displayed_at = Column(UTCDateTime(), default=utcnow)
    display_context = Column(String, nullable=True)  # dashboard | detail_view | report
    expanded = Column(Boolean, nullable=False, default=False)
    dismissed = Column(Boolean, nullable=False, default=False)
    session_id = Column(String(36), nullable=True)
    created_at = Column(UTCDateTime(), default=utcnow)

    __table_args__ = (
        Index("idx_insight_display_log_user_id", "user_id", "displayed_at"),
    )


# =============================================================================
# STAGE 2.1 - reflections
# =============================================================================

class ReflectionEntry(Base):
    """
    User-authored free text.

    Links are purely referential. Content is never analyzed,
    summarized or fed back into signal computation.
    """
    __tablename__ = "reflection_entries"

    id = Column(String(36), primary_key=True, default=_uuid)
    user_id = Column(String(36), nullable=False, index=True)
    content = Column(Text, nullable=False)
    linked_signal_id = Column(String(36), nullable=True)
    linked_project_id = Column(String(36), nullable=True)
    linked_space_id = Column(String(36), nullable=True)
    user_tags = Column(JSON, nullable=False, default=list)
    self_reported_context = Column(JSON, nullable=False, default=dict)
    created_at = Column(UTCDateTime(), default=utcnow)
    updated_at = Column(UTCDateTime(), default=utcnow, onupdate=utcnow)
    deleted_at = Column(UTCDateTime(), nullable=True)
