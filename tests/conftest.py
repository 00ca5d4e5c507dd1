from types import SimpleNamespace

import httpx
import pytest
import pytest_asyncio
from sqlalchemy.ext.asyncio import AsyncSession, async_sessionmaker, create_async_engine
from sqlalchemy.pool import StaticPool

from create_tables import create_tables
from database import get_db
from compliance.audit.repositories.audit_repository import AuditRepository
from compliance.audit.services.audit_service import AuditLogWriter
from compliance.auth.models.admin_user import AdminRole, AdminUser
from compliance.auth.services.auth_service import AuthService
from compliance.collaborators.repositories.collaborator_repository import CollaboratorRepository
from compliance.collaborators.services.collaborator_service import CollaboratorService
from compliance.collaborators.services.status_aggregator import StatusAggregator
from compliance.dependencies import get_blob_store, get_email_dispatcher
from compliance.documents.repositories.document_repository import DocumentRepository
from compliance.documents.services.document_registry import DocumentRegistry
from compliance.errors import DispatchError
from compliance.notifications.services.email_dispatcher import EmailDispatcher
from compliance.notifications.services.email_templates import build_email
from compliance.notifications.services.notification_service import NotificationService
from compliance.signatures.repositories.signature_repository import SignatureRepository
from compliance.signatures.services.signature_ledger import SignatureLedger
from compliance.signatures.services.verification_service import VerificationService
from compliance.storage.services.blob_store import LocalBlobStore
from main import app

ADMIN_PASSWORD = "admin-password"


class RecordingEmailDispatcher(EmailDispatcher):
    """Keeps sent emails in memory; kinds in fail_kinds raise DispatchError."""

    def __init__(self):
        self.sent = []
        self.fail_kinds = set()

    async def send(self, template_kind, recipient_email, recipient_name, template_data):
        if template_kind in self.fail_kinds:
            raise DispatchError("Could not reach the email provider")
        email = build_email(template_kind, recipient_name, template_data)
        self.sent.append({
            "kind": template_kind,
            "to": recipient_email,
            "name": recipient_name,
            "data": template_data,
            "subject": email.subject,
        })
        return f"test-{len(self.sent)}"

    def of_kind(self, kind):
        return [mail for mail in self.sent if mail["kind"] == kind]


@pytest_asyncio.fixture
async def engine():
    engine = create_async_engine(
        "sqlite+aiosqlite://",
        connect_args={"check_same_thread": False},
        poolclass=StaticPool,
    )
    await create_tables(engine)
    yield engine
    await engine.dispose()


@pytest.fixture
def session_factory(engine):
    return async_sessionmaker(engine, class_=AsyncSession, autoflush=False, expire_on_commit=False)


@pytest_asyncio.fixture
async def db(session_factory):
    async with session_factory() as session:
        yield session


@pytest.fixture
def dispatcher():
    return RecordingEmailDispatcher()


@pytest.fixture
def blob_store(tmp_path):
    return LocalBlobStore(str(tmp_path / "blobs"), "http://testserver")


def build_services(db, dispatcher, blob_store):
    audit = AuditLogWriter(AuditRepository(db))
    registry = DocumentRegistry(DocumentRepository(db), audit, blob_store)
    notifications = NotificationService(db, dispatcher, audit, CollaboratorRepository(db))
    ledger = SignatureLedger(SignatureRepository(db), registry, audit)
    aggregator = StatusAggregator(DocumentRepository(db), SignatureRepository(db))
    return SimpleNamespace(
        db=db,
        audit=audit,
        registry=registry,
        notifications=notifications,
        ledger=ledger,
        aggregator=aggregator,
        collaborators=CollaboratorService(
            db, CollaboratorRepository(db), registry, aggregator, notifications, audit
        ),
        verification=VerificationService(
            db, ledger, registry, CollaboratorRepository(db), notifications, audit, blob_store
        ),
    )


@pytest.fixture
def services(db, dispatcher, blob_store):
    return build_services(db, dispatcher, blob_store)


@pytest.fixture
def make_collaborator(services):
    counter = {"n": 0}

    async def factory(contract_type="occasional", **fields):
        counter["n"] += 1
        data = {
            "first_name": "Mario",
            "last_name": "Rossi",
            "email": f"collaborator{counter['n']}@example.com",
            "contract_type": contract_type,
        }
        data.update(fields)
        result = await services.collaborators.create_collaborator(data)
        return result.collaborator, result.documents

    return factory


@pytest_asyncio.fixture
async def client(session_factory, dispatcher, blob_store):
    async def override_get_db():
        async with session_factory() as session:
            yield session

    app.dependency_overrides[get_db] = override_get_db
    app.dependency_overrides[get_blob_store] = lambda: blob_store
    app.dependency_overrides[get_email_dispatcher] = lambda: dispatcher
    transport = httpx.ASGITransport(app=app)
    async with httpx.AsyncClient(transport=transport, base_url="http://testserver") as c:
        yield c
    app.dependency_overrides.clear()


async def create_operator(session_factory, email, role):
    async with session_factory() as session:
        session.add(AdminUser(
            name=role.value.title(),
            email=email,
            password_hash=AuthService.get_password_hash(ADMIN_PASSWORD),
            role=role,
            is_active=True,
        ))
        await session.commit()


async def login_headers(client, email):
    resp = await client.post("/auth/login", json={"email": email, "password": ADMIN_PASSWORD})
    assert resp.status_code == 200, resp.text
    return {"Authorization": f"Bearer {resp.json()['access_token']}"}


@pytest_asyncio.fixture
async def admin_headers(client, session_factory):
    await create_operator(session_factory, "admin@example.com", AdminRole.ADMIN)
    return await login_headers(client, "admin@example.com")


@pytest_asyncio.fixture
async def viewer_headers(client, session_factory):
    await create_operator(session_factory, "viewer@example.com", AdminRole.VIEWER)
    return await login_headers(client, "viewer@example.com")
