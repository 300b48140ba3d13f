from pydantic import BaseModel, ConfigDict, Field
from typing import Annotated, Any, Dict, List, Literal, Optional, Union
from datetime import datetime


class TimeRange(BaseModel):
    start: datetime
    end: datetime


# =============================================================================
# Signal values (tagged union, one variant per signal key)
# =============================================================================

class SessionRecord(BaseModel):
    start: datetime
    end: datetime
    duration_seconds: float
    event_count: int
    source: Literal["explicit", "inferred"]


class SessionBoundariesValue(BaseModel):
    kind: Literal["session_boundaries"] = "session_boundaries"
    sessions: List[SessionRecord]
    session_count: int
    detection_method: Literal["explicit", "inferred"]
    inactivity_gap_minutes: float


class TimeBin(BaseModel):
    bin_index: int
    start_hour: float
    end_hour: float
    count: int


class TimeBinsValue(BaseModel):
    kind: Literal["time_bins_activity_count"] = "time_bins_activity_count"
    bin_count: int
    bins: List[TimeBin]
    total_count: int


class ActivityInterval(BaseModel):
    event_id: str
    event_type: str
    start: datetime
    end: datetime
    duration_seconds: float


class ActivityIntervalsValue(BaseModel):
    kind: Literal["activity_intervals"] = "activity_intervals"
    intervals: List[ActivityInterval]
    interval_count: int
    total_duration_seconds: float
    event_types_filter: Optional[List[str]] = None


class CaptureCoverageValue(BaseModel):
    kind: Literal["capture_coverage"] = "capture_coverage"
    days_with_events: int
    total_days: int
    coverage_ratio: float
    covered_dates: List[str]


SignalValue = Annotated[
    Union[SessionBoundariesValue, TimeBinsValue, ActivityIntervalsValue, CaptureCoverageValue],
    Field(discriminator="kind"),
]


# =============================================================================
# Stage 1 read models
# =============================================================================

class ConsentFlagRead(BaseModel):
    model_config = ConfigDict(from_attributes=True)

    consent_key: str
    is_enabled: bool
    granted_at: Optional[datetime] = None
    revoked_at: Optional[datetime] = None


class CandidateSignalRead(BaseModel):
    model_config = ConfigDict(from_attributes=True)

    signal_id: str
    user_id: str
    signal_key: str
    signal_version: str
    time_range_start: datetime
    time_range_end: datetime
    value_json: Dict[str, Any]
    confidence: float
    provenance_event_ids: List[str]
    provenance_hash: str
    parameters_json: Dict[str, Any]
    status: str
    computed_at: datetime
    invalidated_at: Optional[datetime] = None
    invalidated_reason: Optional[str] = None


class ComputeResult(BaseModel):
    computed: int = 0
    skipped: int = 0
    errors: List[str] = Field(default_factory=list)
    signals: List[CandidateSignalRead] = Field(default_factory=list)
    # signal_key -> invalid_key | no_consent | insufficient_events | reused_existing
    skip_reasons: Dict[str, str] = Field(default_factory=dict)


class InvalidateResult(BaseModel):
    invalidated_count: int = 0
    affected_signal_ids: List[str] = Field(default_factory=list)


class ProvenanceCheck(BaseModel):
    signal_id: str
    matches: bool
    expected_hash: str
    recomputed_hash: Optional[str] = None
    missing_event_ids: List[str] = Field(default_factory=list)


class AuditLogRead(BaseModel):
    model_config = ConfigDict(from_attributes=True)

    audit_id: str
    signal_id: Optional[str] = None
    action: str
    actor: str
    reason: Optional[str] = None
    audit_metadata: Dict[str, Any] = Field(default_factory=dict)
    created_at: datetime


# =============================================================================
# Stage 2 models
# =============================================================================

class DisplayConsentRead(BaseModel):
    model_config = ConfigDict(from_attributes=True)

    signal_key: str
    display_enabled: bool
    granted_at: Optional[datetime] = None
    revoked_at: Optional[datetime] = None
    prefer_collapsed: bool = False
    prefer_hidden: bool = False


class SafeModeRead(BaseModel):
    model_config = ConfigDict(from_attributes=True)

    is_enabled: bool
    enabled_at: Optional[datetime] = None
    disabled_at: Optional[datetime] = None
    activation_reason: Optional[str] = None
    activation_count: int = 0
    last_toggled_at: Optional[datetime] = None


class InsightMetadata(BaseModel):
    signal_key: str
    title: str
    description: str
    what_it_is: List[str]
    what_it_is_not: List[str]
    how_computed: str
    data_used: List[str]
    confidence_meaning: str
    known_risks: List[str]


class DisplayMetadata(BaseModel):
    signal_title: str
    signal_description: str
    what_it_is: str
    what_it_is_not: str
    how_computed: str
    why_useful: Optional[str] = None


class DisplayableInsight(CandidateSignalRead):
    can_display: bool
    display_consent: Optional[DisplayConsentRead] = None
    display_metadata: DisplayMetadata


class FeedbackRead(BaseModel):
    model_config = ConfigDict(from_attributes=True)

    feedback_id: str
    signal_id: str
    signal_key: str
    feedback_type: str
    reason: Optional[str] = None
    displayed_at: Optional[datetime] = None
    feedback_at: datetime
    ui_context: Dict[str, Any] = Field(default_factory=dict)


class DisplayLogRead(BaseModel):
    model_config = ConfigDict(from_attributes=True)

    log_id: str
    signal_id: str
    signal_key: str
    displayed_at: datetime
    display_context: Optional[str] = None
    expanded: bool = False
    dismissed: bool = False
    session_id: Optional[str] = None


# =============================================================================
# Stage 2.1 models
# =============================================================================

class ReflectionRead(BaseModel):
    model_config = ConfigDict(from_attributes=True)

    id: str
    content: str
    linked_signal_id: Optional[str] = None
    linked_project_id: Optional[str] = None
    linked_space_id: Optional[str] = None
    user_tags: List[str] = Field(default_factory=list)
    self_reported_context: Dict[str, Any] = Field(default_factory=dict)
    created_at: datetime
    updated_at: Optional[datetime] = None


class ReflectionStats(BaseModel):
    total_count: int
    linked_to_signal_count: int
    distinct_tag_count: int
    first_created_at: Optional[datetime] = None
    last_created_at: Optional[datetime] = None


# =============================================================================
# API request bodies
# =============================================================================

class ComputeSignalsRequest(BaseModel):
    signal_keys: Optional[List[str]] = None
    time_range: Optional[TimeRange] = None
    force_recompute: bool = False
    # signal_key -> parameter overrides, e.g. {"activity_intervals": {"event_types": ["focus"]}}
    parameters: Optional[Dict[str, Dict[str, Any]]] = None


class InvalidateSignalsRequest(BaseModel):
    event_ids: List[str] = Field(default_factory=list)


class DeleteSignalRequest(BaseModel):
    reason: str = Field("Deleted by user", min_length=1)


class GrantDisplayConsentRequest(BaseModel):
    signal_key: str
    prefer_collapsed: bool = False
    prefer_hidden: bool = False


class SafeModeToggleRequest(BaseModel):
    enabled: bool
    reason: Optional[str] = None


class SubmitFeedbackRequest(BaseModel):
    signal_id: str
    signal_key: str
    feedback_type: Literal["not_helpful", "helpful", "confusing", "concerning"]
    reason: Optional[str] = None
    displayed_at: Optional[datetime] = None
    ui_context: Dict[str, Any] = Field(default_factory=dict)


class LogDisplayRequest(BaseModel):
    signal_id: str
    signal_key: str
    display_context: str
    expanded: bool = False
    dismissed: bool = False
    session_id: Optional[str] = None


class ReflectionCreate(BaseModel):
    content: str
    linked_signal_id: Optional[str] = None
    linked_project_id: Optional[str] = None
    linked_space_id: Optional[str] = None
    user_tags: List[str] = Field(default_factory=list)
    self_reported_context: Dict[str, Any] = Field(default_factory=dict)


class ReflectionUpdate(BaseModel):
    content: Optional[str] = None
    user_tags: Optional[List[str]] = None
    self_reported_context: Optional[Dict[str, Any]] = None
