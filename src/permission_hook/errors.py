"""Shared error types for the permission hook."""


class PermissionHookError(Exception):
    """Base error for all permission hook failures."""


class ConfigError(PermissionHookError):
    """The configuration file could not be read or validated."""

    def __init__(self, path: str, detail: str = "") -> None:
        self.path = path
        self.detail = detail
        super().__init__(f"Invalid config {path}" + (f": {detail}" if detail else ""))


class CoordinationError(PermissionHookError):
    """A lease or session state file could not be read or written."""

    def __init__(self, detail: str = "") -> None:
        self.detail = detail
        super().__init__("Coordination error" + (f": {detail}" if detail else ""))


class TranscriptError(PermissionHookError):
    """The transcript file could not be opened."""

    def __init__(self, path: str, detail: str = "") -> None:
        self.path = path
        self.detail = detail
        super().__init__(f"Cannot read transcript {path}" + (f": {detail}" if detail else ""))


class ClassifierError(PermissionHookError):
    """The ambiguous-action classifier call failed or returned garbage."""


class DeliveryError(PermissionHookError):
    """An outbound notification could not be delivered."""

    def __init__(self, detail: str = "", *, attempts: int = 0) -> None:
        self.detail = detail
        self.attempts = attempts
        msg = "Delivery failed"
        if attempts:
            msg += f" after {attempts} attempt(s)"
        if detail:
            msg += f": {detail}"
        super().__init__(msg)


class RateLimitedError(DeliveryError):
    """The rate limiter had no token available for this send."""

    def __init__(self) -> None:
        super().__init__("rate limit exceeded")


class CircuitOpenError(DeliveryError):
    """The circuit breaker is open and rejects calls."""

    def __init__(self) -> None:
        super().__init__("circuit breaker is open")
