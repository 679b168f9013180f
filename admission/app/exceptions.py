"""Custom exceptions for the admission engine.

Only infrastructure faults and invalid configuration are errors. A request
that exceeds its limit is a normal Deny decision, not an exception.
"""


class AdmissionException(Exception):
    """Base class for admission exceptions with HTTP status code.

    All custom exceptions should inherit from this class and define
    their specific status_code for consistent HTTP response handling.
    """
    status_code: int = 500

    def __init__(self, message: str = "Admission error"):
        self.message = message
        super().__init__(message)


class StoreError(AdmissionException):
    """Raised when the backing store cannot complete an operation.

    Covers unreachable external stores, timeouts and unexpected replies.
    Consumers may retry or fall back on this error; the engine never does.
    """
    status_code = 500

    def __init__(self, message: str = "Rate limit store unavailable", store: str | None = None):
        self.store = store
        super().__init__(message)


class ConfigurationError(AdmissionException):
    """Raised when a policy is invalid.

    Always raised while a policy is being built or merged, never while a
    request is being evaluated.
    """
    status_code = 500

    def __init__(self, message: str, field: str | None = None):
        self.field = field
        super().__init__(message)
