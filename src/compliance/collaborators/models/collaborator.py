import uuid
from enum import Enum as PyEnum

from sqlalchemy import Boolean, Column, DateTime, Float, String, Text

from config import DEFAULT_ANNUAL_LIMIT
from database import Base, utcnow


class ContractType(PyEnum):
    OCCASIONAL = "occasional"
    VAT_REGISTERED = "vat-registered"
    MIXED = "mixed"


# Intake may leave these unset; the collaborator completes them in the portal.
PLACEHOLDER_VALUE = "TO_COMPLETE"
TEMP_TAX_CODE_PREFIX = "TEMP"
PROVINCE_PLACEHOLDER = "XX"

REQUIRED_PROFILE_FIELDS = (
    "first_name", "last_name", "email", "tax_code", "phone", "birth_date",
    "birth_place", "address", "city", "postal_code", "province", "iban",
)


class Collaborator(Base):
    __tablename__ = "collaborators"

    id = Column(String(36), primary_key=True, default=lambda: str(uuid.uuid4()))
    first_name = Column(String(120), nullable=False)
    last_name = Column(String(120), nullable=False, default=PLACEHOLDER_VALUE)
    email = Column(String(255), nullable=False, index=True)
    tax_code = Column(String(32), nullable=False)
    phone = Column(String(32), nullable=True)
    birth_date = Column(String(10), nullable=True)
    birth_place = Column(String(120), nullable=True)
    nationality = Column(String(64), nullable=True)
    address = Column(String(255), nullable=True)
    city = Column(String(120), nullable=True)
    postal_code = Column(String(10), nullable=True)
    province = Column(String(4), nullable=True)
    iban = Column(String(34), nullable=True)
    vat_number = Column(String(20), nullable=True)

    # stored as text so legacy or unknown values survive a read
    contract_type = Column(String(32), nullable=False)
    role_description = Column(String(255), nullable=True)

    annual_limit = Column(Float, nullable=False, default=DEFAULT_ANNUAL_LIMIT)
    annual_amount_used = Column(Float, nullable=False, default=0.0)
    profile_completed = Column(Boolean, nullable=False, default=False)
    notes = Column(Text, nullable=True)

    created_at = Column(DateTime, default=utcnow, nullable=False)
    updated_at = Column(DateTime, default=utcnow, onupdate=utcnow, nullable=False)

    @property
    def full_name(self) -> str:
        return f"{self.first_name} {self.last_name}".strip()

    def is_profile_complete(self) -> bool:
        for field in REQUIRED_PROFILE_FIELDS:
            value = getattr(self, field)
            if value is None or str(value).strip() == "" or value == PLACEHOLDER_VALUE:
                return False
            if field == "tax_code" and str(value).startswith(TEMP_TAX_CODE_PREFIX):
                return False
            if field == "province" and value == PROVINCE_PLACEHOLDER:
                return False
        if self.contract_type == ContractType.VAT_REGISTERED.value and not (self.vat_number or "").strip():
            return False
        return True
