"""
Domain exceptions for the rewards core.

Every error carries a human-readable message (returned to the caller verbatim)
and an HTTP status hint used by the API layer.
"""


class NulexError(Exception):
    """Base exception for all domain failures"""

    status_code = 400

    def __init__(self, message: str = None):
        self.message = message or self.default_message()
        super().__init__(self.message)

    @classmethod
    def default_message(cls) -> str:
        return cls.__name__


# Validation


class ValidationError(NulexError):
    status_code = 400


class ScreenshotRequired(ValidationError):
    @classmethod
    def default_message(cls):
        return "Screenshot is required for this task"


class AnswerRequired(ValidationError):
    @classmethod
    def default_message(cls):
        return "Answer is required for this task"


class NotesRequired(ValidationError):
    @classmethod
    def default_message(cls):
        return "Admin notes are required for rejection"


class BelowMinimum(ValidationError):
    pass


class InvalidReferrer(ValidationError):
    @classmethod
    def default_message(cls):
        return "Invalid referrer"


class InvalidWebhookSignature(ValidationError):
    @classmethod
    def default_message(cls):
        return "Invalid webhook signature"


# Not found


class NotFound(NulexError):
    status_code = 404


class UserNotFound(NotFound):
    @classmethod
    def default_message(cls):
        return "User not found"


class TaskInactiveOrMissing(NotFound):
    @classmethod
    def default_message(cls):
        return "Task not found or inactive"


class UserTaskNotFound(NotFound):
    @classmethod
    def default_message(cls):
        return "User task not found"


class PackageNotFound(NotFound):
    @classmethod
    def default_message(cls):
        return "Package not found"


class WithdrawalNotFound(NotFound):
    @classmethod
    def default_message(cls):
        return "Withdrawal not found"


class PriceNotConfigured(NulexError):
    status_code = 400

    @classmethod
    def default_message(cls):
        return "Package price not configured"


# State conflicts


class StateConflict(NulexError):
    status_code = 409


class AlreadyStarted(StateConflict):
    @classmethod
    def default_message(cls):
        return "You have already started this task"


class NotStarted(StateConflict):
    @classmethod
    def default_message(cls):
        return "You have not started this task"


class AlreadySubmitted(StateConflict):
    @classmethod
    def default_message(cls):
        return "Task already submitted"


class NotReviewable(StateConflict):
    @classmethod
    def default_message(cls):
        return "Task is not in completed status"


class TerminalState(StateConflict):
    pass


class InvalidTransition(StateConflict):
    pass


# Resources


class ResourceError(NulexError):
    status_code = 400


class InsufficientFunds(ResourceError):
    @classmethod
    def default_message(cls):
        return "Insufficient balance"


class TaskFull(ResourceError):
    @classmethod
    def default_message(cls):
        return "Task has reached maximum completions"


class PortalClosed(ResourceError):
    @classmethod
    def default_message(cls):
        return "Withdrawal portal is currently closed"


# External payment processor


class ExternalError(NulexError):
    status_code = 502


class PaymentProcessorError(ExternalError):
    """Raised by the processor client; carries the processor's own message"""

    @classmethod
    def default_message(cls):
        return "Payment processor error"


class PaymentInitError(ExternalError):
    pass


class SettlementFailed(ExternalError):
    pass
