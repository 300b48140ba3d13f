"""
INSIGHT METADATA - user-facing explanation for each signal kind

Every string here is shown to users next to a signal, so every string
passes assert_neutral_language at import time. A judgmental word in
this file stops the process from starting.
"""
from typing import Dict, Iterable

from behavioral_sandbox.schemas import InsightMetadata
from behavioral_sandbox.signal_registry import (
    SIGNAL_REGISTRY,
    SignalKey,
    assert_neutral_language,
    get_signal_definition,
)


_CONTENT = {
    SignalKey.SESSION_BOUNDARIES: {
        "title": "Activity Session Boundaries",
        "description": "Shows when activity sessions started and ended",
        "what_it_is": [
            "Timestamps of when activity began and concluded.",
            "Based on explicit start and end events or on gaps between events.",
            "A factual observation of time boundaries.",
        ],
        "what_it_is_not": [
            "Not a measure of focus quality.",
            "Not an evaluation of session value.",
            "Not a recommendation about session length.",
            "Not a comparison with other sessions.",
        ],
        "data_used": ["Activity start and end events", "Timestamps", "Gaps between events"],
        "confidence_meaning": (
            "Higher when explicit session markers exist, lower when sessions "
            "are inferred from gaps."
        ),
        "known_risks": [
            "May draw attention to session duration.",
            "May create pressure to keep sessions long.",
            "May not reflect actual engagement or value.",
        ],
    },
    SignalKey.TIME_BINS_ACTIVITY_COUNT: {
        "title": "Activity Across Time Windows",
        "description": "Shows when activity events were recorded throughout the day",
        "what_it_is": [
            "Count of recorded events in different time periods.",
            "An observation of when data was captured.",
            "A neutral view of when events occurred.",
        ],
        "what_it_is_not": [
            "Not a measure of output or effectiveness.",
            "Not a suggestion about timing.",
            "Not an evaluation of schedule quality.",
            "Not a comparison with an ideal pattern.",
        ],
        "data_used": ["Event timestamps", "Time-of-day information"],
        "confidence_meaning": "Depends on the number of events available.",
        "known_risks": [
            "May prompt shame about irregular patterns.",
            "May create pressure to normalize a schedule.",
            "May not reflect energy levels or capacity.",
            "Patterns may be circumstantial rather than meaningful.",
        ],
    },
    SignalKey.ACTIVITY_INTERVALS: {
        "title": "Activity Duration Records",
        "description": "Shows how long activities lasted based on recorded data",
        "what_it_is": [
            "Duration measurements from events with a recorded duration.",
            "A factual record of elapsed time.",
            "A neutral observation of activity length.",
        ],
        "what_it_is_not": [
            "Not a measure of quality or value.",
            "Not a suggestion about ideal duration.",
            "Not an evaluation of time use.",
            "Not a comparison with expectations.",
        ],
        "data_used": ["Activity start times", "Recorded durations", "Event types"],
        "confidence_meaning": "High when an explicit duration was recorded.",
        "known_risks": [
            "May prompt comparison with estimated durations.",
            "May create pressure about time spent.",
            "Duration alone does not indicate value or engagement.",
        ],
    },
    SignalKey.CAPTURE_COVERAGE: {
        "title": "Data Capture Overview",
        "description": "Shows which days had any recorded events",
        "what_it_is": [
            "Count of days with at least one event.",
            "A data quality indicator about recording coverage.",
            "An observation about recording patterns.",
        ],
        "what_it_is_not": [
            "Not a measure of habit adherence.",
            "Not an evaluation of engagement quality.",
            "Not a suggestion that more coverage is preferable.",
            "Not a reflection of actual behavior patterns.",
        ],
        "data_used": ["Event timestamps", "Date ranges"],
        "confidence_meaning": "Always 1.0: a direct count of days.",
        "known_risks": [
            "HIGH RISK: may be read as a tally of unbroken days or as a rating.",
            "May prompt shame about gaps in recording.",
            "May create pressure to record daily.",
            "Coverage does not equal value.",
            "Missing data may be intentional or circumstantial.",
        ],
    },
}


def _build(key: SignalKey) -> InsightMetadata:
    content = _CONTENT[key]
    return InsightMetadata(
        signal_key=key.value,
        how_computed=SIGNAL_REGISTRY[key].description,
        **content,
    )


INSIGHT_METADATA: Dict[SignalKey, InsightMetadata] = {key: _build(key) for key in SIGNAL_REGISTRY}


def _strings(metadata: InsightMetadata) -> Iterable[str]:
    yield metadata.title
    yield metadata.description
    yield metadata.how_computed
    yield metadata.confidence_meaning
    for group in (metadata.what_it_is, metadata.what_it_is_not, metadata.data_used, metadata.known_risks):
        yield from group


for _metadata in INSIGHT_METADATA.values():
    for _text in _strings(_metadata):
        assert_neutral_language(_text, f"metadata:{_metadata.signal_key}")


def get_insight_metadata(signal_key) -> InsightMetadata:
    """Metadata for `signal_key`; raises SignalNotFoundError for unknown keys"""
    definition = get_signal_definition(signal_key)
    return INSIGHT_METADATA[definition.key].model_copy(deep=True)
