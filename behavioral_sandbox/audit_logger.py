"""
AUDIT LOGGER - signal_audit_log writer
======================================

Every consent grant/revoke and every signal computed / invalidated /
deleted is written here, in the same transaction as the change itself,
so the audit row exists if and only if the change committed.
"""
from enum import Enum
from typing import Any, Dict, Optional

from behavioral_sandbox.logging_config import get_logger
from behavioral_sandbox.models import SignalAuditLog

logger = get_logger(__name__)


class AuditAction(str, Enum):
    COMPUTED = "computed"
    INVALIDATED = "invalidated"
    DELETED = "deleted"
    CONSENT_GRANTED = "consent_granted"
    CONSENT_REVOKED = "consent_revoked"


class AuditLogger:
    """Writes audit rows through the active UnitOfWork"""

    async def log(
        self,
        uow,
        user_id: str,
        action: AuditAction,
        actor: str,
        reason: Optional[str] = None,
        signal_id: Optional[str] = None,
        metadata: Optional[Dict[str, Any]] = None,
    ) -> SignalAuditLog:
        entry = SignalAuditLog(
            user_id=user_id,
            signal_id=signal_id,
            action=AuditAction(action).value,
            actor=actor,
            reason=reason,
            audit_metadata=metadata or {},
        )
        await uow.audit.add(uow.session, entry)

        logger.info(
            "audit_logged",
            action=entry.action,
            user_id=user_id,
            signal_id=signal_id,
            actor=actor,
            reason=reason,
        )
        return entry

    async def log_consent_change(self, uow, user_id: str, consent_key: str, granted: bool) -> SignalAuditLog:
        return await self.log(
            uow,
            user_id=user_id,
            action=AuditAction.CONSENT_GRANTED if granted else AuditAction.CONSENT_REVOKED,
            actor=user_id,
            reason="User granted consent" if granted else "User revoked consent",
            metadata={"consent_key": consent_key},
        )
