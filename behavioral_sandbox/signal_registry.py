"""
SIGNAL REGISTRY - Whitelist of computable signal kinds

The single source of truth for which signals may ever be computed.
Anything not listed here is rejected before Stage 1 touches it.

Every description in this module is checked by assert_neutral_language
at import time: a judgmental term in the registry is a content bug and
stops the process from starting.
"""
import re
from dataclasses import dataclass
from enum import Enum
from typing import Any, Dict, Iterable, List, Optional, Tuple

from behavioral_sandbox.exceptions import NeutralLanguageViolation, SignalNotFoundError, ValidationError


class SignalKey(str, Enum):
    SESSION_BOUNDARIES = "session_boundaries"
    TIME_BINS_ACTIVITY_COUNT = "time_bins_activity_count"
    ACTIVITY_INTERVALS = "activity_intervals"
    CAPTURE_COVERAGE = "capture_coverage"


class ConsentKey(str, Enum):
    SESSION_STRUCTURES = "session_structures"
    TIME_PATTERNS = "time_patterns"
    ACTIVITY_DURATIONS = "activity_durations"
    DATA_QUALITY_BASIC = "data_quality_basic"


@dataclass(frozen=True)
class SignalParameter:
    name: str
    type: str  # number | integer | string[]
    default: Any
    description: str


@dataclass(frozen=True)
class SignalDefinition:
    """
    Static definition of one signal kind.

    Any change to how a signal is computed requires a version bump.
    """
    key: SignalKey
    version: str
    required_consent: ConsentKey
    description: str
    parameters: Tuple[SignalParameter, ...]
    minimum_events: int
    confidence_threshold: float


# =============================================================================
# NEUTRAL LANGUAGE GUARD
# =============================================================================

# Judgmental or comparative vocabulary. Matched case-insensitively at the
# start of a word, so "streak" also catches "streaks".
FORBIDDEN_TERMS = (
    "streak",
    "productivity",
    "productive",
    "unproductive",
    "success",
    "fail",
    "improvement",
    "improve",
    "better",
    "worse",
    "best",
    "worst",
    "score",
    "ranking",
    "lazy",
    "laziness",
    "discipline",
    "consistency",
    "consistent",
    "achievement",
    "should",
    "optimal",
)

_FORBIDDEN_PATTERN = re.compile(
    r"\b(" + "|".join(re.escape(t) for t in FORBIDDEN_TERMS) + r")\w*",
    re.IGNORECASE,
)


def find_forbidden_terms(text: str) -> List[str]:
    """Return the denylisted terms found in `text` (lowercased, deduplicated)"""
    return sorted({m.group(1).lower() for m in _FORBIDDEN_PATTERN.finditer(text or "")})


def assert_neutral_language(text: str, context: str) -> None:
    """
    Raise NeutralLanguageViolation if `text` contains any forbidden term.

    Never log-and-continue on this: a hit means a content bug.
    """
    terms = find_forbidden_terms(text)
    if terms:
        raise NeutralLanguageViolation(context, terms)


# =============================================================================
# REGISTRY
# =============================================================================

SIGNAL_REGISTRY: Dict[SignalKey, SignalDefinition] = {
    SignalKey.SESSION_BOUNDARIES: SignalDefinition(
        key=SignalKey.SESSION_BOUNDARIES,
        version="1.0.0",
        required_consent=ConsentKey.SESSION_STRUCTURES,
        description=(
            "Start and end timestamps of activity sessions, taken from explicit "
            "start and end events or inferred from gaps between events."
        ),
        parameters=(
            SignalParameter(
                name="inactivity_gap_minutes",
                type="number",
                default=30,
                description="Gap between consecutive events that separates two inferred sessions.",
            ),
        ),
        minimum_events=2,
        confidence_threshold=0.5,
    ),
    SignalKey.TIME_BINS_ACTIVITY_COUNT: SignalDefinition(
        key=SignalKey.TIME_BINS_ACTIVITY_COUNT,
        version="1.0.0",
        required_consent=ConsentKey.TIME_PATTERNS,
        description=(
            "Count of recorded events in each time-of-day window (UTC), "
            "using equal-width windows across 24 hours."
        ),
        parameters=(
            SignalParameter(
                name="bin_count",
                type="integer",
                default=24,
                description="Number of equal-width windows the day is split into (1 to 24).",
            ),
        ),
        minimum_events=5,
        confidence_threshold=0.3,
    ),
    SignalKey.ACTIVITY_INTERVALS: SignalDefinition(
        key=SignalKey.ACTIVITY_INTERVALS,
        version="1.0.0",
        required_consent=ConsentKey.ACTIVITY_DURATIONS,
        description=(
            "Time intervals for events that carry a recorded duration, "
            "from the event time to the event time plus its duration."
        ),
        parameters=(
            SignalParameter(
                name="event_types",
                type="string[]",
                default=None,
                description="Optional set of event types to include; all types when empty.",
            ),
        ),
        minimum_events=1,
        confidence_threshold=0.5,
    ),
    SignalKey.CAPTURE_COVERAGE: SignalDefinition(
        key=SignalKey.CAPTURE_COVERAGE,
        version="1.0.0",
        required_consent=ConsentKey.DATA_QUALITY_BASIC,
        description=(
            "Number of calendar days (UTC) in the range that contain at least one "
            "recorded event, divided by the number of days in the range."
        ),
        parameters=(),
        minimum_events=1,
        confidence_threshold=1.0,
    ),
}


def validate_signal_key(key: Any) -> bool:
    """True if `key` names a registered signal kind"""
    try:
        return SignalKey(key) in SIGNAL_REGISTRY
    except ValueError:
        return False


def get_signal_definition(key: Any) -> SignalDefinition:
    """Return the definition for `key` or raise SignalNotFoundError"""
    if not validate_signal_key(key):
        raise SignalNotFoundError(str(key))
    return SIGNAL_REGISTRY[SignalKey(key)]


def get_required_consent(key: Any) -> ConsentKey:
    return get_signal_definition(key).required_consent


def get_all_signal_keys() -> List[SignalKey]:
    return list(SIGNAL_REGISTRY.keys())


def get_signal_keys_for_consent(consent_key: Any) -> List[SignalKey]:
    """Signal kinds whose computation depends on `consent_key`"""
    consent = ConsentKey(consent_key)
    return [d.key for d in SIGNAL_REGISTRY.values() if d.required_consent == consent]


def get_default_parameters(key: Any) -> Dict[str, Any]:
    definition = get_signal_definition(key)
    return {p.name: p.default for p in definition.parameters if p.default is not None}


def resolve_parameters(key: Any, overrides: Optional[Dict[str, Any]] = None) -> Dict[str, Any]:
    """
    Merge caller overrides onto registry defaults.

    Unknown parameter names are rejected; values are checked against
    the declared type.
    """
    definition = get_signal_definition(key)
    params = get_default_parameters(key)
    known = {p.name: p for p in definition.parameters}

    for name, value in (overrides or {}).items():
        if name not in known:
            raise ValidationError(
                f"Unknown parameter '{name}' for signal {definition.key.value}",
                details={"signal_key": definition.key.value, "parameter": name},
            )
        if value is None:
            params.pop(name, None)
            continue
        _check_parameter_type(definition.key, known[name], value)
        params[name] = list(value) if known[name].type == "string[]" else value

    return params


def _check_parameter_type(key: SignalKey, param: SignalParameter, value: Any) -> None:
    if param.type == "number":
        ok = isinstance(value, (int, float)) and not isinstance(value, bool) and value > 0
    elif param.type == "integer":
        ok = isinstance(value, int) and not isinstance(value, bool) and 1 <= value <= 24
    elif param.type == "string[]":
        ok = isinstance(value, (list, tuple)) and all(isinstance(v, str) for v in value)
    else:
        ok = False

    if not ok:
        raise ValidationError(
            f"Invalid value for parameter '{param.name}' of {key.value}: {value!r}",
            details={"signal_key": key.value, "parameter": param.name},
        )


def _assert_registry_neutral(definitions: Iterable[SignalDefinition]) -> None:
    for definition in definitions:
        assert_neutral_language(definition.description, f"registry:{definition.key.value}")
        for param in definition.parameters:
            assert_neutral_language(
                param.description, f"registry:{definition.key.value}.{param.name}"
            )


_assert_registry_neutral(SIGNAL_REGISTRY.values())
