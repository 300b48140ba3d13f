"""
Behavioral Sandbox Configuration
Single source of truth for thresholds, limits & environment settings
"""
import os
from dataclasses import dataclass, field
from typing import List, Optional


# =========================
# Compute window
# =========================

# Default look-back window when the caller gives no time range
DEFAULT_WINDOW_DAYS = 30

# =========================
# Read limits
# =========================

DEFAULT_SIGNAL_PAGE_SIZE = 100
MAX_SIGNAL_PAGE_SIZE = 500

# get_displayable_insights never returns more than this many rows
DISPLAYABLE_INSIGHTS_LIMIT = 50

DEFAULT_REFLECTION_PAGE_SIZE = 50
DEFAULT_AUDIT_PAGE_SIZE = 100

# =========================
# Stage 2 vocabularies
# =========================

FEEDBACK_TYPES = (
    "not_helpful",
    "helpful",
    "confusing",
    "concerning",
)

DISPLAY_CONTEXTS = (
    "dashboard",
    "detail_view",
    "report",
    "consent_center",
)

# =========================
# Error prefixes (traceability)
# =========================

STAGE_1_ERROR_PREFIX = "[Stage 1 Behavioral Sandbox Error]"
STAGE_2_ERROR_PREFIX = "[Stage 2 Display Layer Error]"
REFLECTION_ERROR_PREFIX = "[Stage 2.1 Reflection Error]"

# =========================
# Actors for the audit trail
# =========================

SYSTEM_ACTOR = "system"


def _env_flag(name: str, default: bool = False) -> bool:
    value = os.getenv(name)
    if value is None:
        return default
    return value.strip().lower() in ("1", "true", "yes", "on")


@dataclass(frozen=True)
class SandboxSettings:
    """
    Process-level settings.

    Built once at startup (see context.build_context) and passed down;
    nothing reads the environment after that.
    """
    database_url: str
    log_level: str = "INFO"
    json_logs: bool = False
    log_file: Optional[str] = None
    default_window_days: int = DEFAULT_WINDOW_DAYS
    allowed_origins: List[str] = field(
        default_factory=lambda: ["http://localhost:3000", "http://localhost:8000"]
    )

    @classmethod
    def from_env(cls) -> "SandboxSettings":
        database_url = os.getenv("DATABASE_URL")
        if not database_url:
            raise ValueError("DATABASE_URL environment variable is not set")

        origins = os.getenv(
            "ALLOWED_ORIGINS", "http://localhost:3000,http://localhost:8000"
        ).split(",")

        return cls(
            database_url=database_url,
            log_level=os.getenv("LOG_LEVEL", "INFO"),
            json_logs=_env_flag("JSON_LOGS"),
            log_file=os.getenv("LOG_FILE") or None,
            default_window_days=int(os.getenv("DEFAULT_WINDOW_DAYS", DEFAULT_WINDOW_DAYS)),
            allowed_origins=[o.strip() for o in origins if o.strip()],
        )
