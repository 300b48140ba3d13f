"""
SIGNAL COMPUTE ENGINE - Stage 1
================================

Bounded window of behavioral events in, one neutral typed value out,
with provenance (contributing event ids + SHA-256 hash) and a confidence.

Pure functions only:
- no consent reads (the orchestration service checks consent first)
- no storage, no display, no side effects
- no partial results: too few events is an error, not a low-confidence guess
"""
import hashlib
import json
import math
from dataclasses import dataclass, field
from datetime import datetime, timedelta, timezone
from typing import Any, Callable, Dict, List, Optional, Sequence, Tuple

from behavioral_sandbox.exceptions import InsufficientDataError, ProvenanceMismatchError, ValidationError
from behavioral_sandbox.schemas import (
    ActivityInterval,
    ActivityIntervalsValue,
    CaptureCoverageValue,
    SessionBoundariesValue,
    SessionRecord,
    TimeBin,
    TimeBinsValue,
)
from behavioral_sandbox.signal_registry import SIGNAL_REGISTRY, SignalKey, get_signal_definition


SESSION_START_TYPES = frozenset({"session_start", "activity_started"})
SESSION_END_TYPES = frozenset({"session_end", "activity_completed"})

DEFAULT_INACTIVITY_GAP_MINUTES = 30
DEFAULT_BIN_COUNT = 24


@dataclass
class SignalComputeContext:
    user_id: str
    signal_key: SignalKey
    time_range_start: datetime
    time_range_end: datetime
    parameters: Dict[str, Any] = field(default_factory=dict)


@dataclass
class ComputeOutput:
    value: Any  # one of the SignalValue variants
    confidence: float
    provenance_event_ids: List[str]
    provenance_hash: str


def _as_utc(value: datetime) -> datetime:
    if value.tzinfo is None:
        return value.replace(tzinfo=timezone.utc)
    return value.astimezone(timezone.utc)


def _boundary_rank(event) -> int:
    # Same instant: starts open before ends close
    if event.event_type in SESSION_START_TYPES:
        return 0
    if event.event_type in SESSION_END_TYPES:
        return 2
    return 1


def _sorted_events(events: Sequence) -> list:
    return sorted(events, key=lambda e: (_as_utc(e.occurred_at), _boundary_rank(e), str(e.id)))


# =============================================================================
# PROVENANCE
# =============================================================================

def _normalize_event(event) -> Dict[str, Any]:
    duration = event.duration_seconds
    return {
        "id": str(event.id),
        "type": event.event_type,
        "time": _as_utc(event.occurred_at).isoformat(),
        "duration": float(duration) if duration is not None else None,
    }


def compute_provenance_hash(events: Sequence) -> str:
    """
    SHA-256 over the normalized, id-sorted event set.

    Input order does not matter; the same event set always yields the
    same digest.
    """
    unique = {str(e.id): e for e in events}
    normalized = [_normalize_event(unique[event_id]) for event_id in sorted(unique)]
    payload = json.dumps(normalized, sort_keys=True, separators=(",", ":"))
    return hashlib.sha256(payload.encode("utf-8")).hexdigest()


def verify_provenance(events: Sequence, event_ids: Sequence[str], expected_hash: str) -> None:
    """
    Fail fast unless `events` are exactly the events named by `event_ids`
    and their hash reproduces `expected_hash`.
    """
    if not event_ids:
        raise ProvenanceMismatchError("Provenance must reference at least one event")

    supplied = {str(e.id) for e in events}
    referenced = {str(i) for i in event_ids}

    if len(referenced) != len(event_ids) or supplied != referenced:
        raise ProvenanceMismatchError(
            "Provenance event set does not match referenced ids",
            details={
                "missing": sorted(referenced - supplied),
                "unexpected": sorted(supplied - referenced),
            },
        )

    actual = compute_provenance_hash(events)
    if actual != expected_hash:
        raise ProvenanceMismatchError(
            "Provenance hash does not reproduce from referenced events",
            details={"expected": expected_hash, "actual": actual},
        )


# =============================================================================
# SIGNAL: session_boundaries
# =============================================================================

def _explicit_sessions(ordered: list) -> List[SessionRecord]:
    sessions = []
    open_start = None

    for event in ordered:
        if event.event_type in SESSION_START_TYPES:
            # A new start before any end replaces the open one
            open_start = event
        elif event.event_type in SESSION_END_TYPES and open_start is not None:
            start = _as_utc(open_start.occurred_at)
            end = _as_utc(event.occurred_at)
            inside = [e for e in ordered if start <= _as_utc(e.occurred_at) <= end]
            sessions.append(SessionRecord(
                start=start,
                end=end,
                duration_seconds=(end - start).total_seconds(),
                event_count=len(inside),
                source="explicit",
            ))
            open_start = None

    return sessions


def _inferred_sessions(ordered: list, gap_minutes: float) -> List[SessionRecord]:
    if not ordered:
        return []

    gap = timedelta(minutes=gap_minutes)
    groups = [[ordered[0]]]
    for previous, current in zip(ordered, ordered[1:]):
        if _as_utc(current.occurred_at) - _as_utc(previous.occurred_at) > gap:
            groups.append([current])
        else:
            groups[-1].append(current)

    sessions = []
    for group in groups:
        start = _as_utc(group[0].occurred_at)
        end = _as_utc(group[-1].occurred_at)
        sessions.append(SessionRecord(
            start=start,
            end=end,
            duration_seconds=(end - start).total_seconds(),
            event_count=len(group),
            source="inferred",
        ))
    return sessions


def _compute_session_boundaries(context: SignalComputeContext, events: Sequence):
    ordered = _sorted_events(events)
    gap_minutes = float(context.parameters.get("inactivity_gap_minutes", DEFAULT_INACTIVITY_GAP_MINUTES))

    sessions = _explicit_sessions(ordered)
    method = "explicit"
    if not sessions:
        sessions = _inferred_sessions(ordered, gap_minutes)
        method = "inferred"

    base = 0.9 if method == "explicit" else 0.6
    confidence = base * min(len(events) / 20, 1.0)

    value = SessionBoundariesValue(
        sessions=sessions,
        session_count=len(sessions),
        detection_method=method,
        inactivity_gap_minutes=gap_minutes,
    )
    return value, confidence, ordered


# =============================================================================
# SIGNAL: time_bins_activity_count
# =============================================================================

def _time_bins_confidence(total: int) -> float:
    if total < 10:
        return 0.3
    if total < 30:
        return 0.6
    if total < 60:
        return 0.8
    return 0.95


def _compute_time_bins(context: SignalComputeContext, events: Sequence):
    bin_count = context.parameters.get("bin_count", DEFAULT_BIN_COUNT)
    if not isinstance(bin_count, int) or not 1 <= bin_count <= 24:
        raise ValidationError(
            f"bin_count must be an integer between 1 and 24, got {bin_count!r}",
            details={"signal_key": context.signal_key.value},
        )

    width = 24 / bin_count
    counts = [0] * bin_count
    for event in events:
        hour = _as_utc(event.occurred_at).hour
        counts[min(hour * bin_count // 24, bin_count - 1)] += 1

    bins = [
        TimeBin(
            bin_index=i,
            start_hour=round(i * width, 4),
            end_hour=round((i + 1) * width, 4),
            count=count,
        )
        for i, count in enumerate(counts)
    ]
    total = sum(counts)

    value = TimeBinsValue(bin_count=bin_count, bins=bins, total_count=total)
    return value, _time_bins_confidence(total), list(events)


# =============================================================================
# SIGNAL: activity_intervals
# =============================================================================

def _compute_activity_intervals(context: SignalComputeContext, events: Sequence):
    event_types: Optional[List[str]] = context.parameters.get("event_types") or None
    considered = [
        e for e in _sorted_events(events)
        if event_types is None or e.event_type in event_types
    ]

    intervals = []
    for event in considered:
        duration = event.duration_seconds
        if duration is None or duration <= 0:
            continue
        start = _as_utc(event.occurred_at)
        intervals.append(ActivityInterval(
            event_id=str(event.id),
            event_type=event.event_type,
            start=start,
            end=start + timedelta(seconds=duration),
            duration_seconds=float(duration),
        ))

    value = ActivityIntervalsValue(
        intervals=intervals,
        interval_count=len(intervals),
        total_duration_seconds=sum(i.duration_seconds for i in intervals),
        event_types_filter=sorted(event_types) if event_types else None,
    )
    confidence = 0.95 if intervals else 0.0
    return value, confidence, considered


# =============================================================================
# SIGNAL: capture_coverage
# =============================================================================

def _compute_capture_coverage(context: SignalComputeContext, events: Sequence):
    start = _as_utc(context.time_range_start)
    end = _as_utc(context.time_range_end)

    in_range = [e for e in events if start <= _as_utc(e.occurred_at) <= end]
    days = sorted({_as_utc(e.occurred_at).date() for e in in_range})

    total_days = max(1, math.ceil((end - start).total_seconds() / 86400))
    ratio = min(len(days) / total_days, 1.0)

    value = CaptureCoverageValue(
        days_with_events=len(days),
        total_days=total_days,
        coverage_ratio=round(ratio, 4),
        covered_dates=[d.isoformat() for d in days],
    )
    # Measurement of data presence, not an inference
    return value, 1.0, in_range


# =============================================================================
# DISPATCH
# =============================================================================

_ComputeFn = Callable[[SignalComputeContext, Sequence], Tuple[Any, float, list]]

_COMPUTERS: Dict[SignalKey, _ComputeFn] = {
    SignalKey.SESSION_BOUNDARIES: _compute_session_boundaries,
    SignalKey.TIME_BINS_ACTIVITY_COUNT: _compute_time_bins,
    SignalKey.ACTIVITY_INTERVALS: _compute_activity_intervals,
    SignalKey.CAPTURE_COVERAGE: _compute_capture_coverage,
}

_missing = set(SIGNAL_REGISTRY) - set(_COMPUTERS)
if _missing:
    raise RuntimeError(f"No compute function for registered signals: {sorted(k.value for k in _missing)}")


def compute_signal(context: SignalComputeContext, events: Sequence) -> ComputeOutput:
    """
    Compute one signal over `events`.

    Raises:
        SignalNotFoundError: key not in the registry
        InsufficientDataError: fewer events than minimum_events, or no
            event contributed to the value
    """
    definition = get_signal_definition(context.signal_key)
    context.signal_key = definition.key

    if len(events) < definition.minimum_events:
        raise InsufficientDataError(definition.key.value, len(events), definition.minimum_events)

    value, confidence, contributing = _COMPUTERS[definition.key](context, events)

    if not contributing:
        raise InsufficientDataError(definition.key.value, 0, definition.minimum_events)

    provenance_ids = sorted({str(e.id) for e in contributing})
    return ComputeOutput(
        value=value,
        confidence=round(max(0.0, min(confidence, 1.0)), 4),
        provenance_event_ids=provenance_ids,
        provenance_hash=compute_provenance_hash(contributing),
    )
