"""
Error taxonomy for account pool and fetch orchestration failures.
"""


class SearchBotError(Exception):
    """Base class for all service errors."""


class NoAccountsAvailable(SearchBotError):
    """Every known pool identity is busy or quarantined."""

    def __init__(self, message: str = "No available accounts"):
        super().__init__(message)


class LoginFailed(SearchBotError):
    """A session could not be provisioned for an identity."""

    def __init__(self, identity: str, reason: str = ""):
        self.identity = identity
        self.reason = reason
        detail = f": {reason}" if reason else ""
        super().__init__(f"Login failed for account {identity}{detail}")


class TimedOut(SearchBotError):
    """A platform call exceeded its deadline."""

    def __init__(self, operation: str):
        self.operation = operation
        super().__init__(f"Operation {operation} timed out")


class AccessDenied(SearchBotError):
    """The platform refused the call for the identity in use."""

    def __init__(self, operation: str, detail: str = ""):
        self.operation = operation
        suffix = f": {detail}" if detail else ""
        super().__init__(f"Denied by access control during {operation}{suffix}")


class NotFound(SearchBotError):
    """A user or tweet does not exist upstream."""

    def __init__(self, entity: str, key: str):
        self.entity = entity
        self.key = key
        super().__init__(f"{entity.capitalize()} not found: {key}")


class UpstreamError(SearchBotError):
    """Unexpected failure from the platform client."""

    def __init__(self, operation: str, cause: BaseException):
        self.operation = operation
        self.cause = cause
        super().__init__(f"{operation} failed: {cause}")


class AnalysisFailed(SearchBotError):
    """Both the primary and the secondary analysis endpoints failed."""

    def __init__(self, message: str = "Unable to complete analysis, please try again later"):
        super().__init__(message)
