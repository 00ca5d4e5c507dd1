import logging
from contextlib import asynccontextmanager

import uvicorn
from fastapi import FastAPI
from fastapi.middleware.cors import CORSMiddleware
from fastapi.staticfiles import StaticFiles

from config import (
    BLOB_STORAGE_DIR, EMAIL_PROVIDER, EMAIL_SENDER, LOG_LEVEL, PUBLIC_BASE_URL, RESEND_API_KEY,
    RESEND_API_URL, SEED_ADMIN_EMAIL, SEED_ADMIN_PASSWORD,
)
from create_tables import create_tables
from database import SessionLocal, commit
from compliance.audit.controllers.audit_controller import router as audit_router
from compliance.auth.controllers.auth_controller import router as auth_router
from compliance.auth.models.admin_user import AdminRole, AdminUser
from compliance.auth.services.auth_service import AuthService
from compliance.collaborators.controllers.collaborator_controller import (
    portal_router, router as collaborator_router,
)
from compliance.documents.controllers.document_controller import router as document_router
from compliance.errors import register_exception_handlers
from compliance.notifications.controllers.webhook_controller import router as webhook_router
from compliance.notifications.services.email_dispatcher import (
    EmailDispatcher, LoggingEmailDispatcher, ResendEmailDispatcher,
)
from compliance.signatures.controllers.signature_controller import router as signature_router
from compliance.storage.services.blob_store import LocalBlobStore

logging.basicConfig(
    level=LOG_LEVEL,
    format="%(asctime)s [%(levelname)s] %(name)s: %(message)s",
)
logger = logging.getLogger(__name__)


def build_email_dispatcher() -> EmailDispatcher:
    if EMAIL_PROVIDER == "resend":
        return ResendEmailDispatcher(RESEND_API_KEY, EMAIL_SENDER, RESEND_API_URL)
    logger.warning("EMAIL_PROVIDER=%s: emails are only written to the log", EMAIL_PROVIDER)
    return LoggingEmailDispatcher()


async def _seed_admin():
    """First operator, so the admin API can be used on a fresh database."""
    async with SessionLocal() as session:
        if await AuthService.find_by_email(session, SEED_ADMIN_EMAIL):
            return
        session.add(AdminUser(
            name="Administrator",
            email=SEED_ADMIN_EMAIL,
            password_hash=AuthService.get_password_hash(SEED_ADMIN_PASSWORD),
            role=AdminRole.ADMIN,
            is_active=True
        ))
        await commit(session)
        logger.info("Seeded administrator %s", SEED_ADMIN_EMAIL)


@asynccontextmanager
async def lifespan(app: FastAPI):
    logger.info("Starting compliance document service")
    await create_tables()
    await _seed_admin()
    app.state.blob_store = LocalBlobStore(BLOB_STORAGE_DIR, PUBLIC_BASE_URL)
    app.state.email_dispatcher = build_email_dispatcher()
    yield
    logger.info("Compliance document service stopped")


app = FastAPI(
    title="Collaborator Compliance Documents",
    description="Compliance onboarding with email-confirmed electronic signatures",
    version="1.0.0",
    lifespan=lifespan
)

app.add_middleware(
    CORSMiddleware,
    allow_origins=["*"],
    allow_methods=["GET", "POST", "PUT", "OPTIONS"],
    allow_headers=["Accept", "Content-Type", "Authorization", "Origin"],
    max_age=86400,
)
register_exception_handlers(app)

app.include_router(auth_router)
app.include_router(collaborator_router)
app.include_router(portal_router)
app.include_router(signature_router)
app.include_router(document_router)
app.include_router(audit_router)
app.include_router(webhook_router)
app.mount("/files", StaticFiles(directory=BLOB_STORAGE_DIR, check_dir=False), name="files")

if __name__ == "__main__":
    uvicorn.run("main:app", host="0.0.0.0", port=8000, reload=True)
