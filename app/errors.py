"""Domain exceptions for the location relay.

Guards and services raise these; ``app.main`` registers one handler that
turns any ``RelayError`` into its JSON response.
"""


class RelayError(Exception):
    """Base for all relay exceptions."""

    status_code = 500
    error = "internal_error"

    def __init__(self, message: str = ""):
        super().__init__(message or self.error)

    def body(self) -> dict:
        return {"error": self.error}

    def headers(self) -> dict[str, str] | None:
        return None


class AuthorizationError(RelayError):
    """Bearer token missing, malformed or not on the allow-list (401)."""

    status_code = 401
    error = "unauthorized"

    def __init__(self, reason: str):
        super().__init__(reason)
        self.reason = reason


class RateLimitExceeded(RelayError):
    """A limiter rejected the request (429)."""

    status_code = 429
    error = "too_many_requests"

    def __init__(self, scope: str, retry_after: int = 0):
        super().__init__(f"rate limit exceeded ({scope})")
        self.scope = scope
        self.retry_after = retry_after

    def headers(self) -> dict[str, str] | None:
        if self.retry_after > 0:
            return {"Retry-After": str(self.retry_after)}
        return None


class PayloadValidationError(RelayError):
    """Request body failed validation (400)."""

    status_code = 400
    error = "invalid_payload"

    def __init__(self, issues: list[str]):
        super().__init__("; ".join(issues))
        self.issues = issues


class PayloadTooLarge(RelayError):
    status_code = 413
    error = "payload_too_large"


class TransportError(RelayError):
    """The email transport failed; carries the upstream detail (502)."""

    status_code = 502
    error = "send_failed"

    def __init__(self, detail: str):
        super().__init__(detail)
        self.detail = detail

    def body(self) -> dict:
        return {"error": self.error, "detail": self.detail}


class ConfigurationError(RelayError):
    """No usable transport configured; fails only the current request (500)."""

    status_code = 500
    error = "email_not_configured"

    def __init__(self, missing: str):
        super().__init__(f"missing configuration: {missing}")
        self.missing = missing
