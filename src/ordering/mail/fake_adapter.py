"""Fake mail adapter — renders and records messages for testing."""

from uuid import uuid4

from ordering.mail.port import DeliveryResult, MailPort
from ordering.templates import render_template


class FakeMailer(MailPort):
    """Mail adapter that records messages in memory for test assertions."""

    def __init__(self):
        self.sent: list[dict] = []
        self.should_succeed = True
        self.failure_reason = "Email delivery failed"
        self.failing_recipients: set[str] = set()

    def configure(self, should_succeed: bool = True, failure_reason: str = "Email delivery failed"):
        """Configure the fake adapter behavior for testing."""
        self.should_succeed = should_succeed
        self.failure_reason = failure_reason

    def fail_for(self, *recipients: str):
        """Make sends to specific recipients fail while others succeed."""
        self.failing_recipients.update(recipients)

    def send(self, template: str, recipient: str, variables: dict) -> DeliveryResult:
        if not self.should_succeed or recipient in self.failing_recipients:
            return DeliveryResult(success=False, error=self.failure_reason)

        rendered = render_template(template, variables)
        message_id = f"email-{uuid4().hex[:12]}"
        self.sent.append(
            {
                "message_id": message_id,
                "template": template,
                "to": recipient,
                "subject": rendered["subject"],
                "body": rendered["body"],
                "variables": dict(variables),
            }
        )
        return DeliveryResult(success=True, message_id=message_id)

    def sent_with(self, template: str) -> list[dict]:
        return [message for message in self.sent if message["template"] == template]

    def reset(self):
        """Clear sent messages (useful between tests)."""
        self.sent.clear()
        self.failing_recipients.clear()
        self.should_succeed = True
        self.failure_reason = "Email delivery failed"
