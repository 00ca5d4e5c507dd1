import uuid

from sqlalchemy import Boolean, Column, DateTime, ForeignKey, Integer, String, Text
from sqlalchemy.orm import validates

from database import Base, utcnow


class SignatureLedgerEntry(Base):
    """One signing intent for one document; append-only evidence."""

    __tablename__ = "signature_ledger"

    id = Column(String(36), primary_key=True, default=lambda: str(uuid.uuid4()))
    document_id = Column(String(36), ForeignKey("documents.id"), nullable=False, index=True)
    collaborator_id = Column(String(36), ForeignKey("collaborators.id"), nullable=False, index=True)

    signer_name = Column(String(255), nullable=False)
    signer_email = Column(String(255), nullable=False)

    content_hash = Column(String(64), nullable=False)
    # exact timestamp string that went into content_hash
    hash_timestamp = Column(String(32), nullable=False)

    verification_code = Column(String(64), nullable=False, unique=True, index=True)
    verification_token = Column(String(64), nullable=False, index=True)
    sequence_index = Column(Integer, nullable=False)
    signature_method = Column(String(32), nullable=False, default="email_confirmation")

    valid = Column(Boolean, nullable=False, default=False)
    email_verified = Column(Boolean, nullable=False, default=False)

    ip_address = Column(String(64), nullable=True)
    user_agent = Column(Text, nullable=True)
    device = Column(String(32), nullable=True)

    created_at = Column(DateTime, default=utcnow, nullable=False)
    validated_at = Column(DateTime, nullable=True)

    @validates("valid")
    def _validate_valid(self, key, value):
        if self.valid and not value:
            raise ValueError("A validated signature cannot be reset")
        return value
