"""
PDF rendering for compliance documents and signature certificates.

Rendering is a collaborator of the signing workflow: it receives a template id
(the document kind) and the field values, and returns PDF bytes.
"""

import io
from typing import Any, Callable, Dict, List, Sequence, Tuple
from xml.sax.saxutils import escape

from reportlab.lib.colors import HexColor
from reportlab.lib.pagesizes import A4
from reportlab.lib.styles import ParagraphStyle, getSampleStyleSheet
from reportlab.lib.units import cm
from reportlab.platypus import Paragraph, SimpleDocTemplate, Spacer, Table, TableStyle

from compliance.documents.models.document import DocumentKind
from compliance.errors import ConfigurationError

Section = Tuple[str, List[str]]

LEGAL_NOTICE = (
    "This electronic signature was confirmed through a one-time link sent to the "
    "signer's email address (Regulation (EU) No 910/2014, eIDAS). The SHA-256 hash "
    "binds the signature to the document, the collaborator, the signer identity and "
    "the signing time."
)


def _build_styles() -> Dict[str, ParagraphStyle]:
    base = getSampleStyleSheet()
    return {
        "title": ParagraphStyle("title", parent=base["Title"], fontSize=16, spaceAfter=6),
        "subtitle": ParagraphStyle("subtitle", parent=base["Normal"], fontSize=9, textColor=HexColor("#555555")),
        "heading": ParagraphStyle("heading", parent=base["Heading3"], spaceBefore=10),
        "body": ParagraphStyle("body", parent=base["Normal"], fontSize=10, leading=14),
        "mono": ParagraphStyle("mono", parent=base["Code"], fontSize=7, leading=9),
    }


def _privacy(f: Dict[str, Any]) -> List[Section]:
    return [
        ("Parties", [f"The collaborator {f['full_name']} (tax code {f['tax_code']}) undertakes the "
                     "following confidentiality obligations towards the company."]),
        ("Confidentiality", [
            "Keep every confidential information received during the collaboration strictly reserved.",
            "Use reserved information only for the purposes of the collaboration.",
            "Return or destroy confidential documents when the collaboration ends.",
            "The obligations remain in force for five years after the collaboration ends.",
        ]),
        ("Personal data", ["Personal data is processed under Regulation (EU) 2016/679 (GDPR) to manage "
                           "the collaboration and to meet tax and social security obligations."]),
    ]


def _independence(f: Dict[str, Any]) -> List[Section]:
    return [
        ("Declaration", [f"I, {f['full_name']}, tax code {f['tax_code']}, declare under my own responsibility:"]),
        ("Statements", [
            "I carry out the activity autonomously and independently.",
            "I am not subject to any bond of subordination.",
            "I organise my working activity on my own.",
            "I am not part of the client's business organisation.",
        ]),
    ]


def _contract_occasional(f: Dict[str, Any]) -> List[Section]:
    return [
        ("Object", [f"The company entrusts {f['full_name']} with an occasional service of "
                    f"{f['role_description']}, without continuity or coordination."]),
        ("Compensation", [f"Compensation is paid per engagement; occasional income may not exceed "
                          f"EUR {f['annual_limit']:.2f} in the calendar year. A receipt with a 20% "
                          "withholding tax is issued for every payment."]),
        ("Duration", [f"The contract is valid until {f['valid_until']}."]),
    ]


def _contract_vat(f: Dict[str, Any]) -> List[Section]:
    return [
        ("Object", [f"The company entrusts the professional {f['full_name']} (VAT number "
                    f"{f['vat_number'] or 'to be communicated'}) with {f['role_description']}."]),
        ("Nature of the relationship", [
            "Full organisational and operational autonomy.",
            "No bond of subordination.",
            "Use of the professional's own means.",
        ]),
        ("Invoicing", ["Services are invoiced by the professional under the applicable VAT regime."]),
        ("Duration", [f"The contract is valid until {f['valid_until']}."]),
    ]


def _multi_client(f: Dict[str, Any]) -> List[Section]:
    return [
        ("Declaration", [f"I, {f['full_name']}, VAT number {f['vat_number'] or 'to be communicated'}, declare:"]),
        ("Statements", [
            "I provide my professional services to more than one client.",
            "No single client represents more than 80% of my annual turnover.",
            "I operate with my own organisation and at my own risk.",
        ]),
    ]


TEMPLATES: Dict[str, Callable[[Dict[str, Any]], List[Section]]] = {
    DocumentKind.PRIVACY.value: _privacy,
    DocumentKind.INDEPENDENCE_DECLARATION.value: _independence,
    DocumentKind.CONTRACT_OCCASIONAL.value: _contract_occasional,
    DocumentKind.CONTRACT_VAT.value: _contract_vat,
    DocumentKind.MULTI_CLIENT_DECLARATION.value: _multi_client,
}


def _build_pdf(title: str, story: list) -> bytes:
    buffer = io.BytesIO()
    doc = SimpleDocTemplate(
        buffer,
        pagesize=A4,
        leftMargin=2 * cm,
        rightMargin=2 * cm,
        topMargin=1.8 * cm,
        bottomMargin=1.8 * cm,
        title=title,
    )
    doc.build(story)
    pdf_bytes = buffer.getvalue()
    buffer.close()
    return pdf_bytes


class DocumentRenderer:

    def __init__(self):
        self.styles = _build_styles()

    def render(self, template_id: str, fields: Dict[str, Any]) -> bytes:
        builder = TEMPLATES.get(template_id)
        if builder is None:
            raise ConfigurationError(f"No template for document kind '{template_id}'")
        try:
            sections = builder(fields)
        except KeyError as exc:
            raise ConfigurationError(f"Template '{template_id}' is missing field {exc}") from exc

        s = self.styles
        story = [
            Paragraph(escape(fields["title"]), s["title"]),
            Paragraph(escape(f"Document {fields['document_number']} - issued {fields['issued_on']}"), s["subtitle"]),
            Spacer(1, 12),
        ]
        for heading, paragraphs in sections:
            story.append(Paragraph(escape(heading), s["heading"]))
            for text in paragraphs:
                story.append(Paragraph(escape(text), s["body"]))
        story.append(Spacer(1, 24))
        story.append(Paragraph("To be signed electronically with email confirmation.", s["subtitle"]))
        return _build_pdf(fields["title"], story)


class CertificateRenderer:
    """Signature certificate for one confirmed batch."""

    def __init__(self):
        self.styles = _build_styles()

    def render(self, signer_name: str, signer_email: str, confirmed_at: str,
               signatures: Sequence[Dict[str, Any]]) -> bytes:
        s = self.styles
        story = [
            Paragraph("Electronic Signature Certificate", s["title"]),
            Paragraph(escape(f"Signer: {signer_name} <{signer_email}>"), s["body"]),
            Paragraph(escape(f"Email confirmed at: {confirmed_at}"), s["body"]),
            Spacer(1, 12),
        ]
        rows = [["Document", "Signed at", "Verification code"]]
        for sig in signatures:
            rows.append([sig["title"], sig["signed_at"], sig["verification_code"]])
        table = Table(rows, colWidths=[7.5 * cm, 4.5 * cm, 5 * cm])
        table.setStyle(TableStyle([
            ("FONTSIZE", (0, 0), (-1, -1), 8),
            ("FONTNAME", (0, 0), (-1, 0), "Helvetica-Bold"),
            ("GRID", (0, 0), (-1, -1), 0.5, HexColor("#999999")),
            ("VALIGN", (0, 0), (-1, -1), "TOP"),
        ]))
        story.append(table)
        story.append(Spacer(1, 12))
        story.append(Paragraph("SHA-256 content hashes", s["heading"]))
        for sig in signatures:
            story.append(Paragraph(escape(f"{sig['title']}: {sig['content_hash']}"), s["mono"]))
        story.append(Spacer(1, 18))
        story.append(Paragraph(escape(LEGAL_NOTICE), s["body"]))
        return _build_pdf("Electronic Signature Certificate", story)
