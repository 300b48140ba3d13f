"""
STAGE 1: BEHAVIORAL SANDBOX SERVICE - Public API
================================================

The ONLY entry point allowed to call the compute engine. Consent is
checked before any event is read, for every signal, every time.

PUBLIC API:
- has_user_consent / grant_consent / revoke_consent / get_consent_flags
- compute_candidate_signals_for_user
- get_candidate_signals
- invalidate_signals_for_deleted_events
- delete_signal
- verify_signal_provenance
- get_audit_log

FORBIDDEN:
- computing without consent
- editing a stored signal in place (only forward status transitions)
- displaying anything (Stage 2 owns display)

Author: Behavioral Sandbox Team
"""
from datetime import datetime, timedelta, timezone
from typing import Any, Dict, List, Optional, Sequence, Union

from behavioral_sandbox.audit_logger import AuditAction, AuditLogger
from behavioral_sandbox.domain.signal_lifecycle import (
    SignalLifecycle,
    SignalStatus,
    TransitionReason,
    consent_revoked_reason,
)
from behavioral_sandbox.error_handler import storage_errors
from behavioral_sandbox.exceptions import (
    ConsentDeniedError,
    InsufficientDataError,
    InvalidTimeRangeError,
    NotFoundError,
    ProvenanceMismatchError,
    SandboxError,
    SignalNotFoundError,
    ValidationError,
)
from behavioral_sandbox.infrastructure.uow import UoWProvider
from behavioral_sandbox.logging_config import get_logger, log_error, log_signal_transition
from behavioral_sandbox.models import CandidateSignal, UserConsentFlag, utcnow
from behavioral_sandbox.sandbox_config import (
    DEFAULT_AUDIT_PAGE_SIZE,
    DEFAULT_SIGNAL_PAGE_SIZE,
    DEFAULT_WINDOW_DAYS,
    MAX_SIGNAL_PAGE_SIZE,
    STAGE_1_ERROR_PREFIX,
    SYSTEM_ACTOR,
)
from behavioral_sandbox.schemas import (
    AuditLogRead,
    CandidateSignalRead,
    ComputeResult,
    ConsentFlagRead,
    InvalidateResult,
    ProvenanceCheck,
    TimeRange,
)
from behavioral_sandbox.signal_compute import (
    SignalComputeContext,
    compute_provenance_hash,
    compute_signal,
    verify_provenance,
)
from behavioral_sandbox.signal_registry import (
    ConsentKey,
    SignalDefinition,
    get_all_signal_keys,
    get_signal_definition,
    get_signal_keys_for_consent,
    resolve_parameters,
    validate_signal_key,
)

logger = get_logger(__name__)


# Per-key skip reasons reported in ComputeResult.skip_reasons
SKIP_INVALID_KEY = "invalid_key"
SKIP_NO_CONSENT = "no_consent"
SKIP_INSUFFICIENT_EVENTS = "insufficient_events"
SKIP_REUSED_EXISTING = "reused_existing"

TimeRangeInput = Union[TimeRange, Sequence[datetime], None]


def _as_utc(value: datetime) -> datetime:
    if value.tzinfo is None:
        return value.replace(tzinfo=timezone.utc)
    return value.astimezone(timezone.utc)


def _consent_key(value: Any) -> ConsentKey:
    try:
        return ConsentKey(value)
    except ValueError:
        raise ValidationError(
            f"Unknown consent key: {value}", details={"consent_key": str(value)}
        ) from None


def _key_name(value: Any) -> str:
    return value.value if hasattr(value, "value") else str(value)


class BehavioralSandboxService:
    """
    Stage 1 orchestration: consent -> compute -> append-only store -> audit.

    Each public call runs in its own UnitOfWork. Batch calls open one
    UnitOfWork per item so a failure on one signal key rolls back only
    that key.
    """

    def __init__(
        self,
        uow_provider: UoWProvider,
        default_window_days: int = DEFAULT_WINDOW_DAYS,
        audit_logger: Optional[AuditLogger] = None,
        lifecycle: Optional[SignalLifecycle] = None,
    ):
        self._uow = uow_provider
        self._default_window_days = default_window_days
        self._audit = audit_logger or AuditLogger()
        self._lifecycle = lifecycle or SignalLifecycle()

    # =========================================================================
    # CONSENT
    # =========================================================================

    async def has_user_consent(self, user_id: str, consent_key: Any) -> bool:
        """True only if a row exists AND is_enabled is true"""
        key = _consent_key(consent_key)
        with storage_errors(STAGE_1_ERROR_PREFIX, "check consent", {"user_id": user_id}):
            async with self._uow() as uow:
                return await self._has_consent(uow, user_id, key)

    async def _has_consent(self, uow, user_id: str, consent_key: ConsentKey) -> bool:
        flag = await uow.consents.get(uow.session, user_id, consent_key.value)
        return flag is not None and flag.is_enabled is True

    async def get_consent_flags(self, user_id: str) -> List[ConsentFlagRead]:
        with storage_errors(STAGE_1_ERROR_PREFIX, "get consent flags", {"user_id": user_id}):
            async with self._uow() as uow:
                flags = await uow.consents.list_for_user(uow.session, user_id)
                return [ConsentFlagRead.model_validate(f) for f in flags]

    async def grant_consent(self, user_id: str, consent_key: Any) -> ConsentFlagRead:
        """Idempotent: granting an already granted key changes nothing"""
        key = _consent_key(consent_key)

        with storage_errors(STAGE_1_ERROR_PREFIX, "grant consent", {"user_id": user_id}):
            async with self._uow() as uow:
                flag = await uow.consents.get(uow.session, user_id, key.value)

                if flag is not None and flag.is_enabled:
                    return ConsentFlagRead.model_validate(flag)

                now = utcnow()
                if flag is None:
                    flag = UserConsentFlag(
                        user_id=user_id,
                        consent_key=key.value,
                        is_enabled=True,
                        granted_at=now,
                    )
                else:
                    flag.is_enabled = True
                    flag.granted_at = now
                    flag.revoked_at = None
                    flag.updated_at = now

                await uow.consents.save(uow.session, flag)
                await self._audit.log_consent_change(uow, user_id, key.value, granted=True)
                result = ConsentFlagRead.model_validate(flag)

        logger.info("consent_granted", user_id=user_id, consent_key=key.value)
        return result

    async def revoke_consent(self, user_id: str, consent_key: Any) -> InvalidateResult:
        """
        Revoke consent and invalidate every candidate signal computed under it.

        Safe to retry: an already revoked flag is left alone and only
        signals still in candidate status are touched.
        """
        key = _consent_key(consent_key)
        reason = consent_revoked_reason(key.value)
        affected_keys = [k.value for k in get_signal_keys_for_consent(key)]

        with storage_errors(STAGE_1_ERROR_PREFIX, "revoke consent", {"user_id": user_id}):
            async with self._uow() as uow:
                flag = await uow.consents.get(uow.session, user_id, key.value)

                if flag is not None and flag.is_enabled:
                    now = utcnow()
                    flag.is_enabled = False
                    flag.revoked_at = now
                    flag.updated_at = now
                    await uow.consents.save(uow.session, flag)
                    await self._audit.log_consent_change(uow, user_id, key.value, granted=False)

                candidates = await uow.signals.list_candidates(uow.session, user_id, affected_keys)
                result = await self._invalidate_all(uow, user_id, candidates, reason)

        logger.info(
            "consent_revoked",
            user_id=user_id,
            consent_key=key.value,
            invalidated_count=result.invalidated_count,
        )
        return result

    # =========================================================================
    # COMPUTE
    # =========================================================================

    def _resolve_time_range(self, time_range: TimeRangeInput):
        if time_range is None:
            end = utcnow()
            return end - timedelta(days=self._default_window_days), end

        if isinstance(time_range, TimeRange):
            start, end = time_range.start, time_range.end
        else:
            try:
                start, end = time_range
            except (TypeError, ValueError):
                raise ValidationError("Time range must be a (start, end) pair") from None

        if not isinstance(start, datetime) or not isinstance(end, datetime):
            raise ValidationError("Time range bounds must be datetimes")

        start, end = _as_utc(start), _as_utc(end)
        if start > end:
            raise InvalidTimeRangeError(start, end)
        return start, end

    async def compute_candidate_signals_for_user(
        self,
        user_id: str,
        signal_keys: Optional[Sequence[Any]] = None,
        time_range: TimeRangeInput = None,
        force_recompute: bool = False,
        parameters: Optional[Dict[str, Dict[str, Any]]] = None,
    ) -> ComputeResult:
        """
        Compute candidate signals for a user, one consent check per key.

        Args:
            user_id: Owner of the events and signals
            signal_keys: Keys to compute; all registry keys by default
            time_range: TimeRange or (start, end); last N days by default
            force_recompute: Skip reuse of an existing candidate for the same range
            parameters: Optional per-key parameter overrides

        Returns:
            ComputeResult with computed/skipped counts, accumulated errors,
            the resulting signals and a skip reason per skipped key.
            Per-key failures never abort the batch.

        Raises:
            ValidationError: malformed time range (before any side effect)
        """
        start, end = self._resolve_time_range(time_range)
        keys = list(signal_keys) if signal_keys is not None else get_all_signal_keys()
        overrides = parameters or {}
        result = ComputeResult()

        for raw_key in keys:
            key_name = _key_name(raw_key)
            try:
                if not validate_signal_key(raw_key):
                    result.errors.append(f"Invalid signal key: {key_name}")
                    result.skipped += 1
                    result.skip_reasons[key_name] = SKIP_INVALID_KEY
                    continue

                definition = get_signal_definition(raw_key)
                outcome, signal = await self._compute_one(
                    user_id,
                    definition,
                    start,
                    end,
                    force_recompute,
                    overrides.get(definition.key.value),
                )

                if signal is not None:
                    result.signals.append(signal)
                if outcome == "computed":
                    result.computed += 1
                else:
                    result.skipped += 1
                    result.skip_reasons[key_name] = outcome

            except ConsentDeniedError:
                result.skipped += 1
                result.skip_reasons[key_name] = SKIP_NO_CONSENT
            except InsufficientDataError:
                result.skipped += 1
                result.skip_reasons[key_name] = SKIP_INSUFFICIENT_EVENTS
            except SandboxError as e:
                result.errors.append(f"{key_name}: {e.message}")
            except Exception as e:
                log_error(e, {"user_id": user_id, "signal_key": key_name})
                result.errors.append(f"{key_name}: {e}")

        logger.info(
            "candidate_signals_computed",
            user_id=user_id,
            computed=result.computed,
            skipped=result.skipped,
            errors=len(result.errors),
        )
        return result

    async def _compute_one(
        self,
        user_id: str,
        definition: SignalDefinition,
        start: datetime,
        end: datetime,
        force_recompute: bool,
        parameter_overrides: Optional[Dict[str, Any]],
    ):
        key = definition.key.value
        params = resolve_parameters(definition.key, parameter_overrides)

        with storage_errors(STAGE_1_ERROR_PREFIX, f"compute {key}", {"user_id": user_id}):
            async with self._uow() as uow:
                # Consent first: no event is read without it
                if not await self._has_consent(uow, user_id, definition.required_consent):
                    raise ConsentDeniedError(definition.required_consent.value)

                events = await uow.events.list_for_window(uow.session, user_id, start, end)
                if len(events) < definition.minimum_events:
                    raise InsufficientDataError(key, len(events), definition.minimum_events)

                if not force_recompute:
                    existing = await uow.signals.find_same_range(
                        uow.session, user_id, key, definition.version, start, end
                    )
                    for row in existing:
                        if row.parameters_json == params:
                            return SKIP_REUSED_EXISTING, CandidateSignalRead.model_validate(row)

                context = SignalComputeContext(
                    user_id=user_id,
                    signal_key=definition.key,
                    time_range_start=start,
                    time_range_end=end,
                    parameters=params,
                )
                output = compute_signal(context, events)

                provenance_ids = set(output.provenance_event_ids)
                contributing = [e for e in events if str(e.id) in provenance_ids]
                verify_provenance(contributing, output.provenance_event_ids, output.provenance_hash)

                signal = CandidateSignal(
                    user_id=user_id,
                    signal_key=key,
                    signal_version=definition.version,
                    time_range_start=start,
                    time_range_end=end,
                    value_json=output.value.model_dump(mode="json"),
                    confidence=output.confidence,
                    provenance_event_ids=output.provenance_event_ids,
                    provenance_hash=output.provenance_hash,
                    parameters_json=params,
                    computed_at=utcnow(),
                    _status=SignalStatus.CANDIDATE.value,
                )
                await uow.signals.save(uow.session, signal)
                await self._audit.log(
                    uow,
                    user_id=user_id,
                    action=AuditAction.COMPUTED,
                    actor=user_id,
                    reason="Signal computed",
                    signal_id=signal.signal_id,
                    metadata={
                        "signal_key": key,
                        "signal_version": definition.version,
                        "event_count": len(output.provenance_event_ids),
                    },
                )
                return "computed", CandidateSignalRead.model_validate(signal)

    # =========================================================================
    # READ
    # =========================================================================

    async def get_candidate_signals(
        self,
        user_id: str,
        signal_keys: Optional[Sequence[Any]] = None,
        time_range: TimeRangeInput = None,
        status: str = SignalStatus.CANDIDATE.value,
        limit: int = DEFAULT_SIGNAL_PAGE_SIZE,
        offset: int = 0,
    ) -> List[CandidateSignalRead]:
        """Newest first, always scoped to `user_id`"""
        keys = None
        if signal_keys:
            for k in signal_keys:
                if not validate_signal_key(k):
                    raise SignalNotFoundError(_key_name(k))
            keys = [get_signal_definition(k).key.value for k in signal_keys]

        try:
            status = SignalStatus(status).value
        except ValueError:
            raise ValidationError(f"Unknown signal status: {status}") from None

        if not 1 <= limit <= MAX_SIGNAL_PAGE_SIZE or offset < 0:
            raise ValidationError(
                "Invalid pagination",
                details={"limit": limit, "offset": offset, "max_limit": MAX_SIGNAL_PAGE_SIZE},
            )

        start = end = None
        if time_range is not None:
            start, end = self._resolve_time_range(time_range)

        with storage_errors(STAGE_1_ERROR_PREFIX, "get signals", {"user_id": user_id}):
            async with self._uow() as uow:
                rows = await uow.signals.list(
                    uow.session, user_id, keys, start, end, status, limit, offset
                )
                return [CandidateSignalRead.model_validate(r) for r in rows]

    async def get_audit_log(
        self, user_id: str, signal_id: Optional[str] = None, limit: int = DEFAULT_AUDIT_PAGE_SIZE
    ) -> List[AuditLogRead]:
        with storage_errors(STAGE_1_ERROR_PREFIX, "get audit log", {"user_id": user_id}):
            async with self._uow() as uow:
                rows = await uow.audit.list(uow.session, user_id, signal_id, limit)
                return [AuditLogRead.model_validate(r) for r in rows]

    # =========================================================================
    # LIFECYCLE
    # =========================================================================

    async def _transition(
        self, uow, user_id: str, signal: CandidateSignal, target: SignalStatus, reason: str, actor: str
    ) -> None:
        event = self._lifecycle.transition(signal, target, reason)
        await uow.signals.update(uow.session, signal)
        await self._audit.log(
            uow,
            user_id=user_id,
            action=AuditAction.INVALIDATED if target == SignalStatus.INVALIDATED else AuditAction.DELETED,
            actor=actor,
            reason=reason,
            signal_id=event.signal_id,
        )
        log_signal_transition(event.signal_id, event.from_status, event.to_status, actor, reason)

    async def _invalidate_all(
        self, uow, user_id: str, signals: Sequence[CandidateSignal], reason: str
    ) -> InvalidateResult:
        result = InvalidateResult()
        for signal in signals:
            try:
                await self._transition(uow, user_id, signal, SignalStatus.INVALIDATED, reason, SYSTEM_ACTOR)
            except SandboxError as e:
                log_error(e, {"user_id": user_id, "signal_id": signal.signal_id}, level="WARNING")
                continue
            result.invalidated_count += 1
            result.affected_signal_ids.append(signal.signal_id)
        return result

    async def invalidate_signals_for_deleted_events(
        self,
        user_id: str,
        event_ids: Sequence[str],
        reason: str = TransitionReason.SOURCE_EVENTS_CHANGED.value,
    ) -> InvalidateResult:
        """
        Invalidate every candidate signal whose provenance touches `event_ids`.

        An empty `event_ids` is a no-op, never "invalidate everything".
        """
        wanted = {str(i) for i in event_ids or []}
        if not wanted:
            return InvalidateResult()

        with storage_errors(STAGE_1_ERROR_PREFIX, "invalidate signals", {"user_id": user_id}):
            async with self._uow() as uow:
                candidates = await uow.signals.list_candidates(uow.session, user_id)
                affected = [
                    s for s in candidates
                    if wanted.intersection(str(i) for i in s.provenance_event_ids or [])
                ]
                result = await self._invalidate_all(uow, user_id, affected, reason)

        logger.info(
            "signals_invalidated",
            user_id=user_id,
            event_count=len(wanted),
            invalidated_count=result.invalidated_count,
        )
        return result

    async def delete_signal(
        self, user_id: str, signal_id: str, reason: str = TransitionReason.DELETED_BY_USER.value
    ) -> CandidateSignalRead:
        """Soft delete: candidate -> deleted. Terminal states raise InvalidTransitionError."""
        with storage_errors(STAGE_1_ERROR_PREFIX, "delete signal", {"user_id": user_id}):
            async with self._uow() as uow:
                signal = await uow.signals.get(uow.session, user_id, signal_id)
                if signal is None:
                    raise NotFoundError("Signal", signal_id)
                await self._transition(uow, user_id, signal, SignalStatus.DELETED, reason, user_id)
                return CandidateSignalRead.model_validate(signal)

    async def verify_signal_provenance(self, user_id: str, signal_id: str) -> ProvenanceCheck:
        """Re-hash the referenced events and compare with the stored hash"""
        with storage_errors(STAGE_1_ERROR_PREFIX, "verify provenance", {"user_id": user_id}):
            async with self._uow() as uow:
                signal = await uow.signals.get(uow.session, user_id, signal_id)
                if signal is None:
                    raise NotFoundError("Signal", signal_id)
                event_ids = [str(i) for i in signal.provenance_event_ids or []]
                events = await uow.events.get_by_ids(uow.session, user_id, event_ids)

        found = {str(e.id) for e in events}
        check = ProvenanceCheck(
            signal_id=signal_id,
            matches=False,
            expected_hash=signal.provenance_hash,
            recomputed_hash=compute_provenance_hash(events) if events else None,
            missing_event_ids=sorted(set(event_ids) - found),
        )
        try:
            verify_provenance(events, event_ids, signal.provenance_hash)
        except ProvenanceMismatchError as e:
            logger.warning("provenance_mismatch", user_id=user_id, signal_id=signal_id, details=e.details)
            return check

        check.matches = True
        return check
