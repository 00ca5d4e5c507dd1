from html import escape
from typing import Any, Dict, Type

from compliance.errors import ConfigurationError

DOCUMENTS_READY = "documents_ready"
VERIFICATION = "verification"
DOCUMENTS_COMPLETED = "documents_completed"


class EmailTemplate:
    kind = ""

    def __init__(self, recipient_name: str, subject: str, body: str):
        self.recipient_name = recipient_name
        self.subject = subject
        self.body = body

    @property
    def html(self) -> str:
        return (
            "<!DOCTYPE html><html><body style=\"font-family: Arial, sans-serif\">"
            f"<p>Hello {escape(self.recipient_name)},</p>{self.body}"
            "<p>Compliance Office</p></body></html>"
        )

    def to_dict(self):
        return {
            'kind': self.kind,
            'subject': self.subject,
            'html': self.html,
        }


class DocumentsReadyEmail(EmailTemplate):
    kind = DOCUMENTS_READY

    def __init__(self, recipient_name: str, data: Dict[str, Any]):
        titles = "".join(f"<li>{escape(t)}</li>" for t in data.get("documents", []))
        body = (
            "<p>Your compliance documents are ready to be reviewed and signed:</p>"
            f"<ul>{titles}</ul>"
            f"<p><a href=\"{escape(data['portal_link'])}\">Open your document portal</a></p>"
        )
        super().__init__(recipient_name, "Compliance documents to sign", body)


class VerificationEmail(EmailTemplate):
    kind = VERIFICATION

    def __init__(self, recipient_name: str, data: Dict[str, Any]):
        titles = "".join(f"<li>{escape(t)}</li>" for t in data.get("documents", []))
        hours = data.get("expires_in_hours", 24)
        body = (
            "<p>Confirm your electronic signature for:</p>"
            f"<ul>{titles}</ul>"
            f"<p>Verification code: <strong>{escape(data['verification_code'])}</strong></p>"
            f"<p><a href=\"{escape(data['verification_link'])}\">Confirm signature</a></p>"
            f"<p>The link is valid for {hours} hours.</p>"
        )
        super().__init__(recipient_name, "Confirm your electronic signature", body)


class DocumentsCompletedEmail(EmailTemplate):
    kind = DOCUMENTS_COMPLETED

    def __init__(self, recipient_name: str, data: Dict[str, Any]):
        titles = "".join(f"<li>{escape(t)}</li>" for t in data.get("documents", []))
        body = (
            "<p>Your signature has been confirmed. Signed documents:</p>"
            f"<ul>{titles}</ul>"
            f"<p><a href=\"{escape(data['download_link'])}\">Download signed documents and certificate</a></p>"
        )
        super().__init__(recipient_name, "Signed documents available", body)


TEMPLATES: Dict[str, Type[EmailTemplate]] = {
    DOCUMENTS_READY: DocumentsReadyEmail,
    VERIFICATION: VerificationEmail,
    DOCUMENTS_COMPLETED: DocumentsCompletedEmail,
}


def build_email(kind: str, recipient_name: str, data: Dict[str, Any]) -> EmailTemplate:
    template_cls = TEMPLATES.get(kind)
    if template_cls is None:
        raise ConfigurationError(f"Unknown email template '{kind}'")
    try:
        return template_cls(recipient_name, data)
    except KeyError as exc:
        raise ConfigurationError(f"Email template '{kind}' is missing field {exc}") from exc
