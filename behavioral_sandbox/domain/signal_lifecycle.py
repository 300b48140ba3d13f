"""
Signal Lifecycle - pure domain layer
====================================
No sessions, no commits, no async, no logging.
Only status rules for candidate signals.
"""
from dataclasses import dataclass
from datetime import datetime, timezone
from enum import Enum
from typing import Optional

from behavioral_sandbox.exceptions import InvalidTransitionError


class SignalStatus(str, Enum):
    CANDIDATE = "candidate"
    INVALIDATED = "invalidated"
    DELETED = "deleted"


class TransitionReason(Enum):
    SOURCE_EVENTS_CHANGED = "Source events deleted or modified"
    DELETED_BY_USER = "Deleted by user"


def consent_revoked_reason(consent_key: str) -> str:
    return f"Consent revoked for category: {consent_key}"


@dataclass
class SignalTransitioned:
    """Domain event - status transition of a candidate signal"""
    signal_id: str
    from_status: str
    to_status: str
    reason: str
    timestamp: datetime


class SignalLifecycle:
    """
    The ONLY way to change a candidate signal's status.

    candidate -> invalidated   (source events changed, consent revoked)
    candidate -> deleted       (user or system removal)

    Both targets are terminal. Nothing goes back to candidate.
    """

    TERMINAL_STATES = {SignalStatus.INVALIDATED, SignalStatus.DELETED}

    ALLOWED_TRANSITIONS = {
        SignalStatus.CANDIDATE: {SignalStatus.INVALIDATED, SignalStatus.DELETED},
        SignalStatus.INVALIDATED: set(),
        SignalStatus.DELETED: set(),
    }

    def can_transition(self, from_status: str, to_status: str) -> bool:
        try:
            current = SignalStatus(from_status)
            target = SignalStatus(to_status)
        except ValueError:
            return False
        return target in self.ALLOWED_TRANSITIONS[current]

    def transition(
        self,
        signal,
        new_status: SignalStatus,
        reason: Optional[str] = None,
        now: Optional[datetime] = None,
    ) -> SignalTransitioned:
        """
        Move `signal` to `new_status`.

        Args:
            signal: CandidateSignal (must have _status, signal_id)
            new_status: Target status
            reason: Why; required for invalidation

        Returns:
            SignalTransitioned: Domain event for audit logging

        Raises:
            InvalidTransitionError: target not reachable from current status
        """
        target = SignalStatus(new_status)
        current = signal._status
        signal_id = str(signal.signal_id)

        if not self.can_transition(current, target.value):
            raise InvalidTransitionError(signal_id, current, target.value)

        timestamp = now or datetime.now(timezone.utc)

        if target == SignalStatus.INVALIDATED:
            signal.invalidated_at = timestamp
            signal.invalidated_reason = reason or TransitionReason.SOURCE_EVENTS_CHANGED.value

        signal._status = target.value

        return SignalTransitioned(
            signal_id=signal_id,
            from_status=current,
            to_status=target.value,
            reason=reason or "Status transition",
            timestamp=timestamp,
        )
