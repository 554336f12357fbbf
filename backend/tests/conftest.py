"""
Test configuration and fixtures for the membership API tests.
"""
import pytest
import pytest_asyncio
from typing import AsyncGenerator, Optional
import httpx
from httpx import AsyncClient, ASGITransport
from sqlalchemy.ext.asyncio import AsyncSession, create_async_engine, async_sessionmaker
from sqlalchemy.pool import NullPool

from gtc_api.main import app
from gtc_api.db.base import Base, get_db
from gtc_api.core.config import Settings, get_settings
from gtc_api.core.deps import get_import_notifier, get_mailchimp_client
from gtc_api.core.security import ApplicationRole, create_access_token
from gtc_api.models.member import Member, MemberStatus, MemberType, Salutation
from gtc_api.services.email import ImportNotifier
from gtc_api.services.mailchimp import MailchimpClient
from gtc_api.services.numbering import MembershipNumberService
from gtc_api.services.store import MemberStore


class FakeEmailService:
    """Records emails instead of sending them."""

    def __init__(self, succeed: bool = True):
        self.sent = []
        self.succeed = succeed

    async def send_email(self, to, subject, body, html=None) -> bool:
        self.sent.append({"to": to, "subject": subject, "body": body})
        return self.succeed


def make_member(**overrides) -> Member:
    """Build a valid, unsaved member."""
    values = dict(
        membership_number=100,
        type=MemberType.FULL,
        status=MemberStatus.CURRENT,
        salutation=Salutation.MR,
        first_name="John",
        last_name="Smith",
        email="john@example.com",
    )
    values.update(overrides)
    return Member(**values)


def mailchimp_settings(**overrides) -> Settings:
    values = dict(MAILCHIMP_API_KEY="0123456789abcdef-us6", MAILCHIMP_LIST_ID="list123")
    values.update(overrides)
    return Settings(**values)


BATCH_PAYLOAD = {
    "id": "batch123",
    "status": "finished",
    "total_operations": 3,
    "finished_operations": 3,
    "errored_operations": 1,
    "submitted_at": "2024-03-01T10:00:00+00:00",
    "completed_at": "2024-03-01T10:05:00+00:00",
}


def default_mailchimp_handler(request: httpx.Request) -> httpx.Response:
    if request.url.path == "/3.0/batches":
        return httpx.Response(200, json={"batches": [BATCH_PAYLOAD], "total_items": 1})
    if request.url.path == "/3.0/batches/batch123":
        return httpx.Response(200, json=BATCH_PAYLOAD)
    if request.method == "GET":
        return httpx.Response(404, json={"title": "Resource Not Found"})
    return httpx.Response(200, json={"status": "subscribed", "last_changed": "2024-03-01T10:00:00+00:00"})


@pytest_asyncio.fixture(scope="function")
async def db_engine(tmp_path):
    """Create a test database engine on a file-based SQLite DB."""
    engine = create_async_engine(
        f"sqlite+aiosqlite:///{tmp_path / 'test.db'}",
        echo=False,
        poolclass=NullPool,
    )
    async with engine.begin() as conn:
        await conn.run_sync(Base.metadata.create_all)
    yield engine
    async with engine.begin() as conn:
        await conn.run_sync(Base.metadata.drop_all)
    await engine.dispose()


@pytest_asyncio.fixture(scope="function")
async def db_session(db_engine) -> AsyncGenerator[AsyncSession, None]:
    """Create a test database session."""
    async_session_maker = async_sessionmaker(
        db_engine,
        class_=AsyncSession,
        expire_on_commit=False
    )
    async with async_session_maker() as session:
        yield session
        await session.rollback()


@pytest.fixture
def store(db_session: AsyncSession) -> MemberStore:
    return MemberStore(db_session)


@pytest.fixture
def numbering(store: MemberStore) -> MembershipNumberService:
    return MembershipNumberService(store)


@pytest.fixture
def email_service() -> FakeEmailService:
    return FakeEmailService()


@pytest.fixture
def notifier(email_service: FakeEmailService) -> ImportNotifier:
    return ImportNotifier(email_service, ["membership@example.com"])


@pytest_asyncio.fixture(scope="function")
async def client(
    db_session: AsyncSession, notifier: ImportNotifier
) -> AsyncGenerator[AsyncClient, None]:
    """Create a test client with database, email and mailing-list overrides."""
    async def override_get_db():
        yield db_session

    mailchimp_http = httpx.AsyncClient(transport=httpx.MockTransport(default_mailchimp_handler))

    app.dependency_overrides[get_db] = override_get_db
    app.dependency_overrides[get_import_notifier] = lambda: notifier
    app.dependency_overrides[get_mailchimp_client] = lambda: MailchimpClient(
        mailchimp_settings(), client=mailchimp_http
    )
    transport = ASGITransport(app=app)
    async with AsyncClient(transport=transport, base_url="http://test") as ac:
        yield ac
    app.dependency_overrides.clear()
    await mailchimp_http.aclose()


@pytest_asyncio.fixture
async def test_member(store: MemberStore) -> Member:
    """A current member, #100."""
    return await store.create(make_member())


@pytest_asyncio.fixture
async def test_application(store: MemberStore) -> Member:
    """An application awaiting acceptance, with no membership number yet."""
    return await store.create(make_member(
        membership_number=None,
        status=MemberStatus.APPLIED,
        salutation=Salutation.MS,
        first_name="Jane",
        last_name="Doe",
        email="jane@example.com",
    ))


def auth_headers_for(*roles: ApplicationRole, membership_number: Optional[int] = None) -> dict:
    """Create authorization headers for a user holding ``roles``."""
    token = create_access_token(
        get_settings(),
        subject="auth0|test-user",
        roles=[role.value for role in roles],
        membership_number=membership_number,
        email="user@example.com",
    )
    return {"Authorization": f"Bearer {token}"}


@pytest.fixture
def read_headers() -> dict:
    return auth_headers_for(ApplicationRole.MEMBERSHIP_READ)


@pytest.fixture
def manage_headers() -> dict:
    return auth_headers_for(ApplicationRole.MEMBERSHIP_MANAGE)


@pytest.fixture
def admin_headers() -> dict:
    return auth_headers_for(ApplicationRole.ADMIN)


@pytest.fixture
def member_headers() -> dict:
    """A member logged in as #100."""
    return auth_headers_for(ApplicationRole.MEMBER, membership_number=100)
