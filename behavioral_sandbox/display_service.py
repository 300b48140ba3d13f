"""
STAGE 2: DISPLAY & FEEDBACK SERVICE
===================================

Consent-gated, read-only access to Stage 1 candidate signals.

RULES:
- Safe Mode overrides ALL display permissions
- Display consent is separate from compute consent and defaults to off
- Feedback is passive: stored, never acted on
- Every display can be logged for transparency
- No judgmental language in any output (see insight_metadata)
"""
from datetime import datetime
from typing import Any, Dict, List, Optional, Sequence

from behavioral_sandbox.domain.signal_lifecycle import SignalStatus
from behavioral_sandbox.error_handler import storage_errors
from behavioral_sandbox.exceptions import NotFoundError, SignalNotFoundError, ValidationError
from behavioral_sandbox.infrastructure.uow import UoWProvider
from behavioral_sandbox.insight_metadata import get_insight_metadata
from behavioral_sandbox.logging_config import get_logger
from behavioral_sandbox.models import (
    InsightDisplayConsent,
    InsightDisplayLog,
    InsightFeedback,
    SafeModeState,
    utcnow,
)
from behavioral_sandbox.sandbox_config import (
    DISPLAY_CONTEXTS,
    DISPLAYABLE_INSIGHTS_LIMIT,
    FEEDBACK_TYPES,
    STAGE_2_ERROR_PREFIX,
)
from behavioral_sandbox.schemas import (
    DisplayableInsight,
    DisplayConsentRead,
    DisplayLogRead,
    DisplayMetadata,
    FeedbackRead,
    InsightMetadata,
    SafeModeRead,
)
from behavioral_sandbox.signal_registry import get_signal_definition, validate_signal_key

logger = get_logger(__name__)


def _signal_key(value: Any) -> str:
    return get_signal_definition(value).key.value


class InsightDisplayService:
    """Stage 2 display layer. Never computes, never edits a signal."""

    def __init__(self, uow_provider: UoWProvider):
        self._uow = uow_provider

    # =========================================================================
    # SAFE MODE
    # =========================================================================

    async def get_safe_mode_status(self, user_id: str) -> Optional[SafeModeRead]:
        with storage_errors(STAGE_2_ERROR_PREFIX, "get Safe Mode", {"user_id": user_id}):
            async with self._uow() as uow:
                state = await uow.safe_mode.get(uow.session, user_id)
                return SafeModeRead.model_validate(state) if state else None

    async def is_safe_mode_enabled(self, user_id: str) -> bool:
        state = await self.get_safe_mode_status(user_id)
        return bool(state and state.is_enabled)

    async def toggle_safe_mode(self, user_id: str, enabled: bool, reason: Optional[str] = None) -> SafeModeRead:
        """
        Enable or disable the emergency brake.

        Upsert: enabling records enabled_at, the reason and bumps
        activation_count; disabling records disabled_at. No data is
        deleted either way.
        """
        with storage_errors(STAGE_2_ERROR_PREFIX, "toggle Safe Mode", {"user_id": user_id}):
            async with self._uow() as uow:
                state = await uow.safe_mode.get(uow.session, user_id)
                if state is None:
                    state = SafeModeState(user_id=user_id, is_enabled=False, activation_count=0)

                now = utcnow()
                if enabled:
                    state.is_enabled = True
                    state.enabled_at = now
                    state.activation_reason = reason
                    state.activation_count = (state.activation_count or 0) + 1
                else:
                    state.is_enabled = False
                    state.disabled_at = now
                state.last_toggled_at = now
                state.updated_at = now

                await uow.safe_mode.save(uow.session, state)
                result = SafeModeRead.model_validate(state)

        logger.info("safe_mode_toggled", user_id=user_id, enabled=enabled)
        return result

    # =========================================================================
    # DISPLAY CONSENT
    # =========================================================================

    async def get_display_consent(self, user_id: str, signal_key: Any) -> Optional[DisplayConsentRead]:
        key = _signal_key(signal_key)
        with storage_errors(STAGE_2_ERROR_PREFIX, "get display consent", {"user_id": user_id}):
            async with self._uow() as uow:
                consent = await uow.display_consents.get(uow.session, user_id, key)
                return DisplayConsentRead.model_validate(consent) if consent else None

    async def get_all_display_consents(self, user_id: str) -> List[DisplayConsentRead]:
        with storage_errors(STAGE_2_ERROR_PREFIX, "get display consents", {"user_id": user_id}):
            async with self._uow() as uow:
                rows = await uow.display_consents.list_for_user(uow.session, user_id)
                return [DisplayConsentRead.model_validate(r) for r in rows]

    async def grant_display_consent(
        self,
        user_id: str,
        signal_key: Any,
        prefer_collapsed: bool = False,
        prefer_hidden: bool = False,
    ) -> DisplayConsentRead:
        key = _signal_key(signal_key)

        with storage_errors(STAGE_2_ERROR_PREFIX, "grant display consent", {"user_id": user_id}):
            async with self._uow() as uow:
                consent = await uow.display_consents.get(uow.session, user_id, key)
                now = utcnow()
                if consent is None:
                    consent = InsightDisplayConsent(user_id=user_id, signal_key=key)

                consent.display_enabled = True
                consent.granted_at = now
                consent.revoked_at = None
                consent.prefer_collapsed = prefer_collapsed
                consent.prefer_hidden = prefer_hidden
                consent.updated_at = now

                await uow.display_consents.save(uow.session, consent)
                result = DisplayConsentRead.model_validate(consent)

        logger.info("display_consent_granted", user_id=user_id, signal_key=key)
        return result

    async def revoke_display_consent(self, user_id: str, signal_key: Any) -> Optional[DisplayConsentRead]:
        """No row means display was never granted; nothing to revoke"""
        key = _signal_key(signal_key)

        with storage_errors(STAGE_2_ERROR_PREFIX, "revoke display consent", {"user_id": user_id}):
            async with self._uow() as uow:
                consent = await uow.display_consents.get(uow.session, user_id, key)
                if consent is None:
                    return None

                now = utcnow()
                consent.display_enabled = False
                consent.revoked_at = now
                consent.updated_at = now
                await uow.display_consents.save(uow.session, consent)
                result = DisplayConsentRead.model_validate(consent)

        logger.info("display_consent_revoked", user_id=user_id, signal_key=key)
        return result

    async def can_display_insight(self, user_id: str, signal_key: Any) -> bool:
        """Display consent AND NOT Safe Mode"""
        if await self.is_safe_mode_enabled(user_id):
            return False
        consent = await self.get_display_consent(user_id, signal_key)
        return bool(consent and consent.display_enabled)

    # =========================================================================
    # INSIGHTS
    # =========================================================================

    def get_insight_metadata(self, signal_key: Any) -> InsightMetadata:
        return get_insight_metadata(signal_key)

    async def get_displayable_insights(
        self,
        user_id: str,
        signal_keys: Optional[Sequence[Any]] = None,
        include_hidden: bool = False,
        respect_safe_mode: bool = True,
    ) -> List[DisplayableInsight]:
        """
        Newest candidate signals annotated for display.

        Safe Mode returns [] when respected. With respect_safe_mode=False
        rows are still only listed when include_hidden is set, and every
        row carries can_display=False while Safe Mode is on.
        """
        keys = None
        if signal_keys:
            for k in signal_keys:
                if not validate_signal_key(k):
                    raise SignalNotFoundError(str(getattr(k, "value", k)))
            keys = [_signal_key(k) for k in signal_keys]

        with storage_errors(STAGE_2_ERROR_PREFIX, "get signals", {"user_id": user_id}):
            async with self._uow() as uow:
                state = await uow.safe_mode.get(uow.session, user_id)
                safe_mode = bool(state and state.is_enabled)
                if safe_mode and respect_safe_mode:
                    return []

                signals = await uow.signals.list(
                    uow.session,
                    user_id,
                    signal_keys=keys,
                    status=SignalStatus.CANDIDATE.value,
                    limit=DISPLAYABLE_INSIGHTS_LIMIT,
                )
                consents = {
                    c.signal_key: c
                    for c in await uow.display_consents.list_for_user(uow.session, user_id)
                }

        insights = []
        for signal in signals:
            consent = consents.get(signal.signal_key)
            can_display = bool(consent and consent.display_enabled) and not safe_mode

            if not can_display and not include_hidden:
                continue
            if consent is not None and consent.prefer_hidden and not include_hidden:
                continue

            metadata = get_insight_metadata(signal.signal_key)
            insights.append(DisplayableInsight(
                signal_id=signal.signal_id,
                user_id=signal.user_id,
                signal_key=signal.signal_key,
                signal_version=signal.signal_version,
                time_range_start=signal.time_range_start,
                time_range_end=signal.time_range_end,
                value_json=signal.value_json,
                confidence=signal.confidence,
                provenance_event_ids=signal.provenance_event_ids,
                provenance_hash=signal.provenance_hash,
                parameters_json=signal.parameters_json or {},
                status=signal.status,
                computed_at=signal.computed_at,
                invalidated_at=signal.invalidated_at,
                invalidated_reason=signal.invalidated_reason,
                can_display=can_display,
                display_consent=DisplayConsentRead.model_validate(consent) if consent else None,
                display_metadata=DisplayMetadata(
                    signal_title=metadata.title,
                    signal_description=metadata.description,
                    what_it_is=" ".join(metadata.what_it_is),
                    what_it_is_not=" ".join(metadata.what_it_is_not),
                    how_computed=metadata.how_computed,
                ),
            ))
        return insights

    # =========================================================================
    # FEEDBACK & DISPLAY LOG (append-only)
    # =========================================================================

    async def _owned_signal(self, uow, user_id: str, signal_id: str, signal_key: str):
        signal = await uow.signals.get(uow.session, user_id, signal_id)
        if signal is None:
            raise NotFoundError("Signal", signal_id)
        if signal.signal_key != signal_key:
            raise ValidationError(
                "Signal key does not match the referenced signal",
                details={"signal_id": signal_id, "signal_key": signal_key},
            )
        return signal

    async def submit_feedback(
        self,
        user_id: str,
        signal_id: str,
        signal_key: Any,
        feedback_type: str,
        reason: Optional[str] = None,
        displayed_at: Optional[datetime] = None,
        ui_context: Optional[Dict[str, Any]] = None,
    ) -> FeedbackRead:
        """
        Record a reaction to a displayed signal.

        Stored only. Nothing reads feedback back into computation,
        ranking or display order.
        """
        if feedback_type not in FEEDBACK_TYPES:
            raise ValidationError(
                f"Unknown feedback type: {feedback_type}",
                details={"allowed": list(FEEDBACK_TYPES)},
            )
        key = _signal_key(signal_key)

        with storage_errors(STAGE_2_ERROR_PREFIX, "submit feedback", {"user_id": user_id}):
            async with self._uow() as uow:
                await self._owned_signal(uow, user_id, signal_id, key)
                feedback = InsightFeedback(
                    user_id=user_id,
                    signal_id=signal_id,
                    signal_key=key,
                    feedback_type=feedback_type,
                    reason=reason,
                    displayed_at=displayed_at,
                    feedback_at=utcnow(),
                    ui_context=ui_context or {},
                )
                await uow.feedback.add(uow.session, feedback)
                result = FeedbackRead.model_validate(feedback)

        logger.info("feedback_submitted", user_id=user_id, signal_key=key, feedback_type=feedback_type)
        return result

    async def log_display(
        self,
        user_id: str,
        signal_id: str,
        signal_key: Any,
        display_context: str,
        expanded: bool = False,
        dismissed: bool = False,
        session_id: Optional[str] = None,
    ) -> DisplayLogRead:
        if display_context not in DISPLAY_CONTEXTS:
            raise ValidationError(
                f"Unknown display context: {display_context}",
                details={"allowed": list(DISPLAY_CONTEXTS)},
            )
        key = _signal_key(signal_key)

        with storage_errors(STAGE_2_ERROR_PREFIX, "log display", {"user_id": user_id}):
            async with self._uow() as uow:
                await self._owned_signal(uow, user_id, signal_id, key)
                entry = InsightDisplayLog(
                    user_id=user_id,
                    signal_id=signal_id,
                    signal_key=key,
                    displayed_at=utcnow(),
                    display_context=display_context,
                    expanded=expanded,
                    dismissed=dismissed,
                    session_id=session_id,
                )
                await uow.display_log.add(uow.session, entry)
                return DisplayLogRead.model_validate(entry)

    async def get_feedback_history(
        self, user_id: str, signal_id: Optional[str] = None, limit: int = 100
    ) -> List[FeedbackRead]:
        with storage_errors(STAGE_2_ERROR_PREFIX, "get feedback", {"user_id": user_id}):
            async with self._uow() as uow:
                rows = await uow.feedback.list(uow.session, user_id, signal_id, limit)
                return [FeedbackRead.model_validate(r) for r in rows]

    async def get_display_log(
        self, user_id: str, signal_id: Optional[str] = None, limit: int = 100
    ) -> List[DisplayLogRead]:
        with storage_errors(STAGE_2_ERROR_PREFIX, "get display log", {"user_id": user_id}):
            async with self._uow() as uow:
                rows = await uow.display_log.list(uow.session, user_id, signal_id, limit)
                return [DisplayLogRead.model_validate(r) for r in rows]
