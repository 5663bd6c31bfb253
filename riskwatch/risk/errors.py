class RiskWatchError(Exception):
    """Base class for every error raised by the risk pipeline."""

    status_code = 500

    def __init__(self, message: str = "", **context):
        super().__init__(message)
        self.message = message
        self.context = context


class ValidationError(RiskWatchError):
    status_code = 400


class InvalidTransition(ValidationError):
    def __init__(self, kind: str, current: str, target: str):
        super().__init__(f"Cannot move {kind} from {current} to {target}", current=current, target=target)


class NotFoundError(RiskWatchError):
    status_code = 404


class AuthorizationError(RiskWatchError):
    status_code = 403


class CollectorError(RiskWatchError):
    """A signal collector could not produce a result."""

    def __init__(self, check: str, message: str):
        super().__init__(f"{check}: {message}", check=check)
        self.check = check


class EnforcementError(RiskWatchError):
    status_code = 503


class NotificationError(RiskWatchError):
    """Compliance notification could not be delivered. Never fatal."""


class ImmutableRecordError(RiskWatchError):
    status_code = 409
