from typing import Any, Dict, Optional

from pydantic import BaseModel, ConfigDict


class EmailProviderEvent(BaseModel):
    """Delivery event posted by the email provider (e.g. email.delivered)."""

    model_config = ConfigDict(extra="allow")

    type: str
    created_at: Optional[str] = None
    data: Dict[str, Any] = {}


class WebhookReceipt(BaseModel):
    received: bool = True
