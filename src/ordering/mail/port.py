"""Mail dispatch port — abstract interface for transactional email."""

from abc import ABC, abstractmethod
from dataclasses import dataclass


@dataclass(frozen=True)
class DeliveryResult:
    """Outcome of handing one message to the mail provider.

    A failed result is retryable; callers must not record the message as sent.
    """

    success: bool
    message_id: str | None = None
    error: str | None = None


class MailPort(ABC):
    """Abstract interface for mail dispatch adapters."""

    @abstractmethod
    def send(self, template: str, recipient: str, variables: dict) -> DeliveryResult:
        """Render `template` with `variables` and deliver it to `recipient`."""
        ...
