class ServiceError(Exception):
    """Base for failures that map onto a single HTTP status at the API boundary."""

    status_code = 500

    def __init__(self, message: str):
        super().__init__(message)
        self.message = message


class ValidationError(ServiceError):
    status_code = 400


class AuthError(ServiceError):
    status_code = 401


class Forbidden(ServiceError):
    status_code = 403


class NotFound(ServiceError):
    status_code = 404


class InvalidTransition(ServiceError):
    status_code = 409


class DeliveryError(Exception):
    """Notification could not be delivered. Never surfaced to API callers."""
