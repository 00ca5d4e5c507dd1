import logging
import uuid
from typing import Any, Dict, Optional

import httpx

from compliance.errors import DispatchError
from compliance.notifications.services.email_templates import build_email

logger = logging.getLogger(__name__)


class EmailDispatcher:
    """Sends one templated email and returns the provider's delivery id."""

    async def send(self, template_kind: str, recipient_email: str, recipient_name: str,
                   template_data: Dict[str, Any]) -> str:
        raise NotImplementedError


class LoggingEmailDispatcher(EmailDispatcher):
    """Development dispatcher: logs the message instead of sending it."""

    async def send(self, template_kind, recipient_email, recipient_name, template_data):
        email = build_email(template_kind, recipient_name, template_data)
        delivery_id = f"local-{uuid.uuid4()}"
        logger.info("Email %s to %s: %s (%s)", template_kind, recipient_email, email.subject, delivery_id)
        return delivery_id


class ResendEmailDispatcher(EmailDispatcher):

    def __init__(self, api_key: str, sender: str, api_url: str,
                 client: Optional[httpx.AsyncClient] = None, timeout: float = 10.0):
        self.api_key = api_key
        self.sender = sender
        self.api_url = api_url
        self.client = client
        self.timeout = timeout

    async def send(self, template_kind, recipient_email, recipient_name, template_data):
        if not self.api_key:
            raise DispatchError("Email provider API key is not configured")

        email = build_email(template_kind, recipient_name, template_data)
        payload = {
            "from": self.sender,
            "to": [recipient_email],
            "subject": email.subject,
            "html": email.html,
            "tags": [{"name": "template", "value": template_kind}],
        }
        if template_data.get("collaborator_id"):
            payload["tags"].append({"name": "collaborator_id", "value": template_data["collaborator_id"]})
        headers = {"Authorization": f"Bearer {self.api_key}"}

        try:
            if self.client is not None:
                response = await self.client.post(self.api_url, json=payload, headers=headers)
            else:
                async with httpx.AsyncClient(timeout=self.timeout) as client:
                    response = await client.post(self.api_url, json=payload, headers=headers)
            response.raise_for_status()
        except httpx.HTTPStatusError as exc:
            logger.warning("Email provider rejected %s to %s: %s", template_kind, recipient_email,
                           exc.response.status_code)
            raise DispatchError("Email provider rejected the message") from exc
        except httpx.HTTPError as exc:
            logger.warning("Email dispatch of %s to %s failed: %s", template_kind, recipient_email, exc)
            raise DispatchError("Could not reach the email provider") from exc

        try:
            delivery_id = response.json().get("id", "")
        except ValueError:
            delivery_id = ""
        logger.info("Email %s sent to %s (%s)", template_kind, recipient_email, delivery_id)
        return delivery_id
