from fastapi import APIRouter, Depends

from compliance.notifications.models.schemas import EmailProviderEvent, WebhookReceipt
from compliance.notifications.services.notification_service import NotificationService
from compliance.dependencies import get_notification_service

router = APIRouter(prefix="/webhooks", tags=["webhooks"])


@router.post("/email", response_model=WebhookReceipt)
async def email_provider_event(
    event: EmailProviderEvent,
    service: NotificationService = Depends(get_notification_service)
):
    """Delivery events from the email provider, kept in the audit log."""
    await service.record_provider_event(event.model_dump())
    return WebhookReceipt()
