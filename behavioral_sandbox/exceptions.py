"""
Domain Exceptions for the Behavioral Sandbox

Every error raised by the sandbox inherits from SandboxError so the API
layer can render it uniformly.
"""


class SandboxError(Exception):
    """Base exception for all behavioral sandbox errors"""

    def __init__(self, message: str, details: dict = None):
        self.message = message
        self.details = details or {}
        super().__init__(self.message)

    def to_dict(self):
        """Serialize for API responses"""
        return {
            "error": {
                "code": self.__class__.__name__,
                "message": self.message,
                "details": self.details
            }
        }


# =============================================================================
# Validation (rejected before any side effect)
# =============================================================================

class ValidationError(SandboxError):
    """Input rejected synchronously before touching storage"""


class SignalNotFoundError(ValidationError):
    """Signal key is not in the registry whitelist"""

    def __init__(self, signal_key: str):
        super().__init__(
            message=f"Signal key not found in registry: {signal_key}",
            details={"signal_key": signal_key}
        )


class InvalidTimeRangeError(ValidationError):
    """Time range start is after its end (or is otherwise malformed)"""

    def __init__(self, start, end):
        super().__init__(
            message="Time range start must not be after end",
            details={"start": str(start), "end": str(end)}
        )


class EmptyReflectionError(ValidationError):
    """Reflection content is empty or whitespace only"""

    def __init__(self):
        super().__init__(message="Reflection content must not be empty")


# =============================================================================
# Computation
# =============================================================================

class InsufficientDataError(SandboxError):
    """Fewer events than the signal's minimum_events floor"""

    def __init__(self, signal_key: str, event_count: int, minimum_events: int):
        super().__init__(
            message=(
                f"Insufficient events for {signal_key}: "
                f"got {event_count}, need at least {minimum_events}"
            ),
            details={
                "signal_key": signal_key,
                "event_count": event_count,
                "minimum_events": minimum_events
            }
        )


class ConsentDeniedError(SandboxError):
    """Required consent is not enabled"""

    def __init__(self, consent_key: str):
        super().__init__(
            message=f"Consent not granted: {consent_key}",
            details={"consent_key": consent_key}
        )


class ProvenanceMismatchError(SandboxError):
    """Provenance ids or hash do not match the events they reference"""


# =============================================================================
# Content guardrail
# =============================================================================

class NeutralLanguageViolation(SandboxError):
    """A registry or display string contains a forbidden judgmental term"""

    def __init__(self, context: str, terms: list):
        super().__init__(
            message=f"Forbidden term(s) {sorted(terms)} found in {context}",
            details={"context": context, "terms": sorted(terms)}
        )


# =============================================================================
# Lifecycle / storage
# =============================================================================

class InvalidTransitionError(SandboxError):
    """Candidate signal status transition is not allowed"""

    def __init__(self, signal_id: str, from_status: str, to_status: str):
        super().__init__(
            message=f"Cannot transition signal from '{from_status}' to '{to_status}'",
            details={
                "signal_id": signal_id,
                "from_status": from_status,
                "to_status": to_status
            }
        )


class NotFoundError(SandboxError):
    """Row does not exist for this user"""

    def __init__(self, entity: str, entity_id: str):
        super().__init__(
            message=f"{entity} not found: {entity_id}",
            details={"entity": entity, "id": entity_id}
        )


class PersistenceError(SandboxError):
    """Storage failure, wrapped with a module prefix for traceability"""

    def __init__(self, prefix: str, operation: str, cause: Exception):
        super().__init__(
            message=f"{prefix} Failed to {operation}: {cause}",
            details={"operation": operation, "cause": type(cause).__name__}
        )
