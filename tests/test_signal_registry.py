"""
SIGNAL REGISTRY TESTS

Whitelist lookups, consent mapping, parameter resolution and the
neutral-language guard.
"""
import pytest

from behavioral_sandbox.exceptions import NeutralLanguageViolation, SignalNotFoundError, ValidationError
from behavioral_sandbox.insight_metadata import INSIGHT_METADATA, get_insight_metadata
from behavioral_sandbox.signal_registry import (
    SIGNAL_REGISTRY,
    ConsentKey,
    SignalKey,
    assert_neutral_language,
    find_forbidden_terms,
    get_all_signal_keys,
    get_default_parameters,
    get_required_consent,
    get_signal_definition,
    get_signal_keys_for_consent,
    resolve_parameters,
    validate_signal_key,
)


class TestRegistryLookup:
    """Known keys resolve, unknown keys are rejected"""

    def test_all_four_signals_registered(self):
        assert set(get_all_signal_keys()) == {
            SignalKey.SESSION_BOUNDARIES,
            SignalKey.TIME_BINS_ACTIVITY_COUNT,
            SignalKey.ACTIVITY_INTERVALS,
            SignalKey.CAPTURE_COVERAGE,
        }

    def test_validate_signal_key(self):
        assert validate_signal_key("session_boundaries") is True
        assert validate_signal_key(SignalKey.CAPTURE_COVERAGE) is True
        assert validate_signal_key("daily_streak") is False
        assert validate_signal_key(None) is False

    def test_unknown_key_raises(self):
        with pytest.raises(SignalNotFoundError) as exc_info:
            get_signal_definition("daily_streak")
        assert exc_info.value.details["signal_key"] == "daily_streak"

    def test_definitions_are_versioned(self):
        for definition in SIGNAL_REGISTRY.values():
            assert definition.version == "1.0.0"
            assert definition.minimum_events >= 1
            assert 0 <= definition.confidence_threshold <= 1

    def test_minimum_events(self):
        assert get_signal_definition("session_boundaries").minimum_events == 2
        assert get_signal_definition("time_bins_activity_count").minimum_events == 5
        assert get_signal_definition("activity_intervals").minimum_events == 1
        assert get_signal_definition("capture_coverage").minimum_events == 1


class TestConsentMapping:
    def test_each_signal_has_its_own_consent(self):
        assert get_required_consent("session_boundaries") == ConsentKey.SESSION_STRUCTURES
        assert get_required_consent("time_bins_activity_count") == ConsentKey.TIME_PATTERNS
        assert get_required_consent("activity_intervals") == ConsentKey.ACTIVITY_DURATIONS
        assert get_required_consent("capture_coverage") == ConsentKey.DATA_QUALITY_BASIC

    def test_signals_for_consent(self):
        assert get_signal_keys_for_consent("time_patterns") == [SignalKey.TIME_BINS_ACTIVITY_COUNT]

    def test_unknown_consent_key(self):
        with pytest.raises(ValueError):
            get_signal_keys_for_consent("everything")


class TestParameters:
    def test_defaults(self):
        assert get_default_parameters("session_boundaries") == {"inactivity_gap_minutes": 30}
        assert get_default_parameters("time_bins_activity_count") == {"bin_count": 24}
        # None defaults are omitted
        assert get_default_parameters("activity_intervals") == {}
        assert get_default_parameters("capture_coverage") == {}

    def test_override_merges_onto_defaults(self):
        params = resolve_parameters("session_boundaries", {"inactivity_gap_minutes": 45})
        assert params == {"inactivity_gap_minutes": 45}

    def test_string_list_override(self):
        params = resolve_parameters("activity_intervals", {"event_types": ("focus", "reading")})
        assert params == {"event_types": ["focus", "reading"]}

    def test_unknown_parameter_rejected(self):
        with pytest.raises(ValidationError):
            resolve_parameters("capture_coverage", {"target_days": 7})

    @pytest.mark.parametrize("value", [0, 25, 2.5, True, "24"])
    def test_bin_count_out_of_range_rejected(self, value):
        with pytest.raises(ValidationError):
            resolve_parameters("time_bins_activity_count", {"bin_count": value})

    def test_negative_gap_rejected(self):
        with pytest.raises(ValidationError):
            resolve_parameters("session_boundaries", {"inactivity_gap_minutes": -5})


class TestNeutralLanguage:
    """Judgmental vocabulary is caught at the start of any word"""

    def test_finds_terms_case_insensitively(self):
        assert find_forbidden_terms("Your Streaks look BETTER this week") == ["better", "streak"]

    def test_prefix_forms_caught(self):
        assert find_forbidden_terms("a disciplined routine") == ["discipline"]
        assert find_forbidden_terms("unproductive afternoon") == ["unproductive"]

    def test_substrings_inside_words_ignored(self):
        # terms only match at a word start
        assert find_forbidden_terms("Counts of rescored and unsuccessful entries") == []

    def test_assert_raises(self):
        with pytest.raises(NeutralLanguageViolation) as exc_info:
            assert_neutral_language("You should record more", "test")
        assert exc_info.value.details["terms"] == ["should"]

    def test_neutral_text_passes(self):
        assert_neutral_language("Count of recorded events in each time window.", "test")

    def test_registry_descriptions_are_neutral(self):
        for definition in SIGNAL_REGISTRY.values():
            assert find_forbidden_terms(definition.description) == []
            for param in definition.parameters:
                assert find_forbidden_terms(param.description) == []


class TestInsightMetadata:
    def test_metadata_for_every_signal(self):
        assert set(INSIGHT_METADATA) == set(SIGNAL_REGISTRY)

    def test_metadata_strings_are_neutral(self):
        for metadata in INSIGHT_METADATA.values():
            texts = [metadata.title, metadata.description, metadata.how_computed, metadata.confidence_meaning]
            texts += metadata.what_it_is + metadata.what_it_is_not + metadata.data_used + metadata.known_risks
            for text in texts:
                assert find_forbidden_terms(text) == [], text

    def test_how_computed_is_registry_description(self):
        metadata = get_insight_metadata("capture_coverage")
        assert metadata.how_computed == SIGNAL_REGISTRY[SignalKey.CAPTURE_COVERAGE].description
        assert metadata.title == "Data Capture Overview"

    def test_returned_metadata_is_a_copy(self):
        metadata = get_insight_metadata("session_boundaries")
        metadata.what_it_is.append("mutated")
        assert "mutated" not in get_insight_metadata("session_boundaries").what_it_is

    def test_unknown_key(self):
        with pytest.raises(SignalNotFoundError):
            get_insight_metadata("weekly_rank")
