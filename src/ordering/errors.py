"""Error taxonomy for the ordering domain.

State-machine violations extend protean's ValidationError so the API layer
reports them as rejected actions (400). The remaining errors describe
infrastructure or recovery-link outcomes and are mapped to HTTP statuses in
ordering.api.errors.
"""

from protean.exceptions import ValidationError


class IllegalTransitionError(ValidationError):
    """The requested status is not a legal successor of the current one."""

    @classmethod
    def between(cls, current: str, target: str) -> "IllegalTransitionError":
        return cls({"status": [f"Cannot transition from {current} to {target}"]})


class TransitionNotPermittedError(IllegalTransitionError):
    """The transition is legal, but not for the acting role."""


class TransitionConflictError(IllegalTransitionError):
    """The order changed status while the transition was being applied."""


class OrderingError(Exception):
    """Base class for non-validation failures in the ordering domain."""

    def __init__(self, message: str, **context):
        super().__init__(message)
        self.message = message
        self.context = context


class NotFoundError(OrderingError):
    pass


class RecoveryLinkNotFoundError(NotFoundError):
    """No reminder was issued with the given recovery token."""


class ExpiredError(OrderingError):
    pass


class RecoveryLinkExpiredError(ExpiredError):
    """The recovery link is older than its validity window."""


class PersistenceError(OrderingError):
    """A storage write failed; any partial write has been compensated."""


class GatewayError(OrderingError):
    """The payment processor rejected or failed a request."""


class DeliveryError(OrderingError):
    """A mail adapter could not hand a message to the provider."""
