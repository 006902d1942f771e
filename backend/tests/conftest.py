"""
MedSnap Backend — Test Configuration (conftest.py)
====================================================

What:  Shared pytest fixtures for the whole suite.
How:   Environment variables are set before anything from medsnap is
       imported, so the settings singleton and the module-level engine
       never see a real database or real Stripe keys.

Fixture Hierarchy (all function-scoped):
    ├── db_engine:        in-memory SQLite (aiosqlite, StaticPool) with tables created
    ├── db_session:       AsyncSession on that engine
    ├── profiles / documents: repositories over db_session
    ├── storage:          LocalBlobStorage in a temp directory
    ├── catalog:          DocumentCatalog wired to the above (free limit 10)
    ├── sample_pdf_bytes: minimal PDF content
    ├── sample_png_bytes: minimal PNG content
    ├── make_metadata:    DocumentMetadata factory
    ├── sign_payload / make_event: Stripe webhook body and signature helpers
    └── test_client:      httpx AsyncClient on the app with db/storage overridden
"""

import os
import tempfile

os.environ["DATABASE_URL"] = "sqlite+aiosqlite://"
os.environ["STORAGE_BACKEND"] = "local"
os.environ["STORAGE_ROOT"] = tempfile.mkdtemp(prefix="medsnap_test_")
os.environ["SIGNED_URL_SECRET"] = "test-signing-secret"
os.environ["STRIPE_SECRET_KEY"] = ""
os.environ["STRIPE_WEBHOOK_SECRET"] = ""
os.environ["FREE_UPLOAD_LIMIT"] = "10"
os.environ["RATE_LIMIT_REQUESTS"] = "10000"
os.environ["LOG_LEVEL"] = "WARNING"

import hashlib  # noqa: E402
import hmac  # noqa: E402
import json  # noqa: E402
import time  # noqa: E402

import pytest  # noqa: E402
import pytest_asyncio  # noqa: E402
from httpx import ASGITransport, AsyncClient  # noqa: E402
from sqlalchemy.ext.asyncio import async_sessionmaker, create_async_engine  # noqa: E402
from sqlalchemy.pool import StaticPool  # noqa: E402

from medsnap.database import Base, get_db_session  # noqa: E402
from medsnap.models.document import Guideline  # noqa: E402,F401
from medsnap.models.profile import Profile  # noqa: E402,F401
from medsnap.schemas.document import DocumentMetadata  # noqa: E402
from medsnap.services.data_store import DocumentRepository, ProfileRepository  # noqa: E402
from medsnap.services.document_service import DocumentCatalog  # noqa: E402
from medsnap.services.local_storage import LocalBlobStorage  # noqa: E402

TEST_WEBHOOK_SECRET = "whsec_test_secret"


# ══════════════════════════════════════════════════════════════════════════
# Database
# ══════════════════════════════════════════════════════════════════════════

@pytest_asyncio.fixture
async def db_engine():
    """Fresh in-memory database per test; StaticPool keeps the one connection alive."""
    engine = create_async_engine(
        "sqlite+aiosqlite://",
        poolclass=StaticPool,
        connect_args={"check_same_thread": False},
    )
    async with engine.begin() as conn:
        await conn.run_sync(Base.metadata.create_all)
    yield engine
    await engine.dispose()


@pytest_asyncio.fixture
async def db_session(db_engine):
    factory = async_sessionmaker(db_engine, expire_on_commit=False)
    async with factory() as session:
        yield session


@pytest.fixture
def profiles(db_session):
    return ProfileRepository(db_session)


@pytest.fixture
def documents(db_session):
    return DocumentRepository(db_session)


# ══════════════════════════════════════════════════════════════════════════
# Storage and Catalog
# ══════════════════════════════════════════════════════════════════════════

@pytest.fixture
def storage(tmp_path):
    return LocalBlobStorage(storage_root=str(tmp_path / "storage"), secret="test-signing-secret")


@pytest.fixture
def catalog(documents, profiles, storage):
    return DocumentCatalog(
        documents=documents,
        profiles=profiles,
        storage=storage,
        free_limit=10,
        signed_url_ttl=3600,
    )


@pytest.fixture
def sample_pdf_bytes():
    """Smallest byte string that starts and ends like a PDF."""
    return b"%PDF-1.4\n1 0 obj\n<<>>\nendobj\ntrailer\n<<>>\n%%EOF\n"


@pytest.fixture
def sample_png_bytes():
    """A complete 1x1 PNG, so content sniffing sees a real image signature."""
    return (
        b"\x89PNG\r\n\x1a\n\x00\x00\x00\rIHDR\x00\x00\x00\x01\x00\x00\x00\x01\x08\x06\x00\x00\x00\x1f\x15\xc4\x89"
        b"\x00\x00\x00\rIDATx\x9cc\xf8\x0f\x00\x00\x01\x01\x00\x05\x18\xd8N"
        b"\x00\x00\x00\x00IEND\xaeB`\x82"
    )


@pytest.fixture
def make_metadata():
    def _make(**overrides):
        values = {
            "title": "Sepsis Protocol",
            "category": "Emergency",
            "tags": ["sepsis", "icu"],
            "notes": "Hour-1 bundle",
            "source_url": "https://www.sccm.org/survivingsepsiscampaign",
        }
        values.update(overrides)
        return DocumentMetadata(**values)

    return _make


# ══════════════════════════════════════════════════════════════════════════
# Webhook Helpers
# ══════════════════════════════════════════════════════════════════════════

def _stripe_signature(payload: bytes, secret: str = TEST_WEBHOOK_SECRET, timestamp: int = None) -> str:
    ts = int(time.time()) if timestamp is None else timestamp
    signed = f"{ts}.{payload.decode('utf-8')}".encode("utf-8")
    digest = hmac.new(secret.encode("utf-8"), signed, hashlib.sha256).hexdigest()
    return f"t={ts},v1={digest}"


def _event_payload(event_type: str, obj: dict, event_id: str = "evt_test_1") -> bytes:
    return json.dumps({"id": event_id, "type": event_type, "data": {"object": obj}}).encode("utf-8")


@pytest.fixture
def sign_payload():
    """A Stripe-Signature header value computed the way Stripe computes it."""
    return _stripe_signature


@pytest.fixture
def make_event():
    """Raw webhook body: {"id", "type", "data": {"object": ...}}."""
    return _event_payload


@pytest.fixture
def webhook_secret():
    return TEST_WEBHOOK_SECRET


# ══════════════════════════════════════════════════════════════════════════
# API Client
# ══════════════════════════════════════════════════════════════════════════

@pytest_asyncio.fixture
async def test_client(db_session, storage):
    """
    HTTPX client on the real app. The request session is the test's
    db_session, so a test can assert on rows right after a request.
    """
    from medsnap.dependencies import get_blob_storage
    from medsnap.main import app

    async def _session_override():
        try:
            yield db_session
            await db_session.commit()
        except Exception:
            await db_session.rollback()
            raise

    app.dependency_overrides[get_db_session] = _session_override
    app.dependency_overrides[get_blob_storage] = lambda: storage

    transport = ASGITransport(app=app)
    async with AsyncClient(transport=transport, base_url="http://test") as client:
        yield client

    app.dependency_overrides.clear()
