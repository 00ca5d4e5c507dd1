from typing import Optional, Sequence

from fastapi import FastAPI, Request, status
from fastapi.exceptions import RequestValidationError
from fastapi.responses import JSONResponse


class ComplianceError(Exception):
    """Base for every error the signing workflow reports to its caller."""

    status_code = status.HTTP_500_INTERNAL_SERVER_ERROR

    def __init__(self, message: str):
        super().__init__(message)
        self.message = message

    def to_payload(self) -> dict:
        return {"message": self.message}


class ValidationError(ComplianceError):
    status_code = status.HTTP_400_BAD_REQUEST


class NotFoundError(ComplianceError):
    status_code = status.HTTP_404_NOT_FOUND


class ConfigurationError(ComplianceError):
    """Unknown contract type or missing template."""

    status_code = status.HTTP_400_BAD_REQUEST
    collaborator_id: Optional[str] = None

    def to_payload(self) -> dict:
        payload = {"message": self.message}
        if self.collaborator_id:
            payload["collaboratorId"] = self.collaborator_id
        return payload


class InvalidStateError(ComplianceError):
    status_code = status.HTTP_409_CONFLICT


class InvalidCodeError(ComplianceError):
    status_code = status.HTTP_404_NOT_FOUND
    GENERIC_MESSAGE = "Invalid or expired verification link."

    def __init__(self, message: Optional[str] = None):
        # the public message never says why the code did not resolve
        super().__init__(self.GENERIC_MESSAGE)
        self.reason = message


class StorageError(ComplianceError):
    status_code = status.HTTP_500_INTERNAL_SERVER_ERROR


class DispatchError(ComplianceError):
    """Email could not be sent. Signatures already recorded stand."""

    status_code = status.HTTP_500_INTERNAL_SERVER_ERROR
    batch_token: Optional[str] = None

    def to_payload(self) -> dict:
        payload = {"message": self.message}
        if self.batch_token:
            payload["batchToken"] = self.batch_token
        return payload


class ArtifactIntegrityError(ComplianceError):
    """Stored artifact no longer matches its recorded hash."""

    status_code = status.HTTP_409_CONFLICT


class PartialValidationError(ComplianceError):
    status_code = status.HTTP_500_INTERNAL_SERVER_ERROR

    def __init__(self, validated_entry_ids: Sequence[str], failed: dict):
        self.validated_entry_ids = list(validated_entry_ids)
        self.failed = dict(failed)
        super().__init__(
            f"{len(self.validated_entry_ids)} signature(s) confirmed, "
            f"{len(self.failed)} failed; open the link again to retry"
        )

    @property
    def failed_entry_ids(self) -> list:
        return list(self.failed)

    def to_payload(self) -> dict:
        return {
            "message": self.message,
            "validatedEntryIds": self.validated_entry_ids,
            "failedEntryIds": self.failed_entry_ids,
        }


def register_exception_handlers(app: FastAPI) -> None:
    @app.exception_handler(ComplianceError)
    async def compliance_error_handler(request: Request, exc: ComplianceError):
        return JSONResponse(status_code=exc.status_code, content=exc.to_payload())

    @app.exception_handler(RequestValidationError)
    async def request_validation_handler(request: Request, exc: RequestValidationError):
        errors = exc.errors()
        if errors:
            first = errors[0]
            field = ".".join(str(part) for part in first.get("loc", ()) if part != "body")
            message = f"{field}: {first.get('msg')}" if field else first.get("msg")
        else:
            message = "Invalid request"
        return JSONResponse(status_code=status.HTTP_400_BAD_REQUEST, content={"message": message})
