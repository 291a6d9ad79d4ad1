import os, tempfile, uuid
from pathlib import Path

import pytest

# point the app at throwaway storage before it is imported
_TMP = Path(tempfile.mkdtemp(prefix="drive-tests-"))
os.environ["ENV"] = "test"
os.environ["DATABASE_URL"] = f"sqlite:///{(_TMP / 'drive.db').as_posix()}"
os.environ["UPLOAD_DIR"] = str(_TMP / "uploads")
os.environ["SESSION_STORE"] = "database"
os.environ["FRONTEND_URL"] = "http://frontend.test"
os.environ["GOOGLE_CLIENT_ID"] = "test-client-id"
os.environ["GOOGLE_CLIENT_SECRET"] = "test-client-secret"
os.environ["SECRET_KEY"] = "test-secret"

from fastapi.testclient import TestClient

from drive.main import app
from drive.shared.config import settings
from drive.shared.db import Base, SessionLocal, engine, init_db
from drive.auth.schemas import GOOGLE_ISSUER, ProviderProfile
from drive.auth.service import link_identity
from drive.auth.sessions import get_session_manager
from drive.files.models import File
from drive.files.storage import BlobStore, StoredBlob, get_blob_store
from drive.files.service import create_file_record


@pytest.fixture(autouse=True)
def _fresh_db():
    init_db()
    yield
    app.dependency_overrides.clear()
    Base.metadata.drop_all(bind=engine)

@pytest.fixture
def db():
    with SessionLocal() as s:
        yield s

@pytest.fixture
def blobs() -> BlobStore:
    return get_blob_store()

@pytest.fixture
def make_client():
    clients = []
    def _make() -> TestClient:
        c = TestClient(app)
        clients.append(c)
        return c
    yield _make
    for c in clients:
        c.close()

@pytest.fixture
def client(make_client):
    return make_client()

def make_user(db, subject: str | None = None, name: str = "Alice", email: str | None = None):
    subject = subject or uuid.uuid4().hex
    emails = [email] if email else []
    return link_identity(db, GOOGLE_ISSUER, ProviderProfile(subject=subject, display_name=name, emails=emails))

@pytest.fixture
def login(db):
    """Create a user and put a live session cookie on the given client."""
    def _login(c: TestClient, **kw):
        identity = make_user(db, **kw)
        token = get_session_manager().create(identity)
        c.cookies.set(settings.SESSION_COOKIE_NAME, token)
        return identity
    return _login

@pytest.fixture
def put_file(db, blobs):
    """Write a blob straight to the store root and register it, bypassing HTTP."""
    def _put(owner_id: str, name: str, data: bytes = b"hello", mime: str = "text/plain") -> File:
        fname = f"file-{uuid.uuid4().hex}{Path(name).suffix}"
        path = blobs.root / fname
        path.write_bytes(data)
        return create_file_record(db, owner_id, name, mime, len(data), StoredBlob(filename=fname, path=path, size=len(data)))
    return _put
