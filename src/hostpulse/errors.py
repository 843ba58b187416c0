"""Error taxonomy for hostpulse."""

from dataclasses import dataclass, field
from typing import Any


@dataclass
class HostPulseError(Exception):
    """Base error carrying a stable code and a client-safe message."""

    code: str
    user_message: str
    context: dict[str, Any] = field(default_factory=dict)

    def __post_init__(self) -> None:
        super().__init__(self.code)

    def to_dict(self) -> dict[str, Any]:
        """Serialize to the error payload returned to clients."""
        return {"error": self.user_message, "code": self.code}


class ConfigError(HostPulseError):
    def __init__(self, user_message: str = "Configuration error.", **ctx: Any):
        super().__init__("config_error", user_message, context=ctx)


class ProviderUnavailable(HostPulseError):
    """A metric provider query failed; recovered at the cache boundary."""

    def __init__(self, user_message: str = "Metric provider unavailable.", **ctx: Any):
        super().__init__("provider_unavailable", user_message, context=ctx)


class InvalidInputError(HostPulseError):
    def __init__(self, user_message: str = "Invalid input.", **ctx: Any):
        super().__init__("bad_input", user_message, context=ctx)


class TargetNotFoundError(HostPulseError):
    def __init__(self, user_message: str = "Process not found.", **ctx: Any):
        super().__init__("not_found", user_message, context=ctx)


class PermissionDeniedError(HostPulseError):
    def __init__(self, user_message: str = "Permission denied.", **ctx: Any):
        super().__init__("permission_denied", user_message, context=ctx)


class InternalFailureError(HostPulseError):
    def __init__(self, user_message: str = "Internal failure.", **ctx: Any):
        super().__init__("internal_failure", user_message, context=ctx)


# HTTP status per error code; anything unlisted is a 500.
STATUS_CODES: dict[str, int] = {
    "bad_input": 400,
    "permission_denied": 403,
    "not_found": 404,
    "provider_unavailable": 503,
}


def status_for(error: HostPulseError) -> int:
    """Return the HTTP status code for an error."""
    return STATUS_CODES.get(error.code, 500)
