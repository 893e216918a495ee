"""HTTP mail adapter — posts rendered messages to a transactional mail API.

The payload follows the common {from, to, subject, text} JSON shape used by
Resend-style APIs. Each call is a bounded synchronous request; timeouts and
provider errors come back as failed DeliveryResults so the caller can retry
on its next run.
"""

import httpx

from ordering.domain import logger
from ordering.mail.port import DeliveryResult, MailPort
from ordering.templates import render_template


class HttpMailer(MailPort):
    def __init__(self, api_url: str, api_key: str, sender: str, timeout: float = 10.0, transport=None):
        self.api_url = api_url
        self.sender = sender
        self._client = httpx.Client(
            headers={
                "Authorization": f"Bearer {api_key}",
                "Content-Type": "application/json",
            },
            timeout=httpx.Timeout(timeout),
            transport=transport,
        )

    def send(self, template: str, recipient: str, variables: dict) -> DeliveryResult:
        rendered = render_template(template, variables)
        payload = {
            "from": self.sender,
            "to": [recipient],
            "subject": rendered["subject"],
            "text": rendered["body"],
        }
        try:
            response = self._client.post(self.api_url, json=payload)
        except httpx.HTTPError as exc:
            logger.warning("mail_transport_error", template=template, error=str(exc))
            return DeliveryResult(success=False, error=str(exc))

        if response.status_code >= 400:
            logger.warning(
                "mail_rejected",
                template=template,
                status_code=response.status_code,
                body=response.text[:300],
            )
            return DeliveryResult(success=False, error=f"Mail API returned {response.status_code}")

        message_id = None
        try:
            message_id = response.json().get("id")
        except ValueError:
            logger.debug("mail_response_not_json", template=template)
        return DeliveryResult(success=True, message_id=message_id)

    def close(self):
        self._client.close()
