"""Domain exceptions raised by the lead engine."""


class LeadEngineError(Exception):
    """Base class. `code` is a machine-readable reason for API clients."""

    code = "lead_engine_error"

    def __init__(self, message: str, code: str | None = None):
        self.message = message
        if code:
            self.code = code
        super().__init__(message)


class ValidationError(LeadEngineError):
    code = "validation_error"

    def __init__(self, message: str, code: str | None = None, errors: list | None = None):
        self.errors = errors or []
        super().__init__(message, code)


class NotFoundError(LeadEngineError):
    code = "not_found"

    def __init__(self, resource: str, resource_id=None):
        self.resource = resource
        self.resource_id = resource_id
        message = f"{resource} {resource_id} not found" if resource_id else f"{resource} not found"
        super().__init__(message, f"{resource.lower()}_not_found")


class PermissionDeniedError(LeadEngineError):
    code = "permission_denied"

    def __init__(self, reason: str, message: str | None = None):
        self.reason = reason
        super().__init__(message or f"Permission denied: {reason}", reason)


class ConflictError(LeadEngineError):
    code = "conflict"


class DownstreamError(LeadEngineError):
    """Notification, webhook or queue failure. Never escapes a worker."""

    code = "downstream_error"

    def __init__(self, channel: str, message: str):
        self.channel = channel
        super().__init__(f"{channel}: {message}")
