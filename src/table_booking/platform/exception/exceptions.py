class CustomBaseError(Exception):
    """Base class for all custom exceptions - controls logging behavior in @Logger.io"""

    def __init__(self, message: str, status_code: int) -> None:
        self.message = message
        self.status_code = status_code
        super().__init__(message)


class DomainError(CustomBaseError):
    def __init__(self, message: str, status_code: int = 400) -> None:
        super().__init__(message, status_code)


class NotFoundError(CustomBaseError):
    def __init__(self, message: str) -> None:
        super().__init__(message, 404)


class ConflictError(CustomBaseError):
    def __init__(self, message: str) -> None:
        super().__init__(message, 409)


# =============================================================================
# Booking widget errors
# =============================================================================


class ConfigurationError(CustomBaseError):
    """Establishment configuration missing or unusable. Fatal for the widget."""

    def __init__(self, message: str) -> None:
        super().__init__(message, 500)


class AvailabilityError(CustomBaseError):
    def __init__(self, message: str) -> None:
        super().__init__(message, 502)


class RemoteTimeoutError(CustomBaseError):
    """The remote service did not answer in time. Not definitive: the request may have landed."""

    def __init__(self, message: str) -> None:
        super().__init__(message, 504)


class HoldError(CustomBaseError):
    def __init__(self, message: str) -> None:
        super().__init__(message, 409)


class ConfirmError(CustomBaseError):
    def __init__(self, message: str) -> None:
        super().__init__(message, 502)


class PaymentError(CustomBaseError):
    def __init__(
        self,
        message: str,
        *,
        code: str | None = None,
        error_type: str | None = None,
        decline_code: str | None = None,
        param: str | None = None,
    ) -> None:
        self.code = code
        self.error_type = error_type
        self.decline_code = decline_code
        self.param = param
        super().__init__(message, 402)


class HoldExpiredError(CustomBaseError):
    def __init__(self, message: str = 'Your table hold has expired. Please start again.') -> None:
        super().__init__(message, 410)


class DetailsValidationError(DomainError):
    def __init__(self, errors: dict[str, str]) -> None:
        self.errors = errors
        super().__init__('Please complete all required fields', 422)


class InvalidSessionTransitionError(ConflictError):
    pass


class SelectionInvalidError(DomainError):
    """The add-on selection or seating choice is not ready for a hold."""

    def __init__(self, message: str, *, reason: str | None = None) -> None:
        self.reason = reason
        super().__init__(message, 422)
