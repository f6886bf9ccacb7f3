import json
import os
import tempfile

import httpx
import pytest
from fastapi.testclient import TestClient
from sqlalchemy import create_engine
from sqlalchemy.orm import sessionmaker
from sqlalchemy.pool import StaticPool

# Use in-memory SQLite for tests by default, can be overridden via TEST_DATABASE_URL
TEST_DB_URL = os.getenv("TEST_DATABASE_URL", "sqlite+pysqlite:///:memory:")

# Local uploads land here; app.main mounts <root>/uploads as /uploads.
UPLOAD_ROOT = tempfile.mkdtemp(prefix="fa-uploads-")

# Ensure the app uses SQLite during imports (app.main creates tables in non-prod).
os.environ.setdefault("ENVIRONMENT", "development")
os.environ.setdefault("DATABASE_URL", TEST_DB_URL)
os.environ.setdefault("SIGNUP_MODE", "open")
os.environ["STORAGE_LOCAL_ROOT"] = UPLOAD_ROOT
os.environ["STORAGE_BACKENDS"] = "github,local"
# No token: the remote backend fails fast and uploads fall back to local disk.
os.environ["GITHUB_TOKEN"] = ""

from app.main import create_app
from app.db.base import Base
from app.db.session import get_db_session
from app.storage.service import FileStorage, StorageConfig, build_storage, get_file_storage


GITHUB_SHA = "3d21ec53a331a6f037a91c368710b99387d012c1"


@pytest.fixture(scope="function")
def engine():
    # Important: in-memory SQLite needs StaticPool to keep the same DB across connections.
    kwargs = {"connect_args": {"check_same_thread": False}}
    if TEST_DB_URL.endswith(":memory:"):
        kwargs["poolclass"] = StaticPool
    eng = create_engine(TEST_DB_URL, **kwargs)
    Base.metadata.create_all(bind=eng)
    try:
        yield eng
    finally:
        Base.metadata.drop_all(bind=eng)


@pytest.fixture(scope="function")
def db_session(engine):
    TestingSessionLocal = sessionmaker(autocommit=False, autoflush=False, bind=engine)
    db = TestingSessionLocal()
    try:
        yield db
    finally:
        db.close()


@pytest.fixture(scope="function")
def storage() -> FileStorage:
    """Default chain (github -> local) with no GitHub token configured."""
    return build_storage(StorageConfig(local_root=UPLOAD_ROOT, github_token=None))


@pytest.fixture(scope="function")
def client(db_session, storage):
    app = create_app()

    # Override the DB session dependency to use the test database
    def override_get_db():
        try:
            yield db_session
        finally:
            pass

    app.dependency_overrides[get_db_session] = override_get_db
    app.dependency_overrides[get_file_storage] = lambda: storage
    return TestClient(app)


class FakeGitHub:
    """
    httpx.MockTransport handler standing in for the GitHub contents API.
    Records every request; `fail_with` forces an error status on all calls.
    """

    def __init__(self, fail_with: int | None = None, raise_error: bool = False):
        self.fail_with = fail_with
        self.raise_error = raise_error
        self.requests = []

    def __call__(self, request: httpx.Request) -> httpx.Response:
        body = json.loads(request.content or b"{}")
        self.requests.append((request.method, request.url.path, body))
        if self.raise_error:
            raise httpx.ConnectError("connection refused", request=request)
        if self.fail_with:
            return httpx.Response(self.fail_with, json={"message": "Bad credentials"})
        if request.method == "PUT":
            path = request.url.path.split("/contents/", 1)[1]
            return httpx.Response(
                201,
                json={
                    "content": {
                        "path": path,
                        "sha": GITHUB_SHA,
                        "html_url": f"https://github.com/finance-office/finance-files/blob/main/{path}",
                    }
                },
            )
        return httpx.Response(200, json={"commit": {"sha": "f" * 40}})

    @property
    def transport(self) -> httpx.MockTransport:
        return httpx.MockTransport(self)


@pytest.fixture(scope="function")
def fake_github():
    return FakeGitHub()


@pytest.fixture(scope="function")
def github_storage(fake_github) -> FileStorage:
    config = StorageConfig(local_root=UPLOAD_ROOT, github_token="test-token")
    return build_storage(config, transport=fake_github.transport)


def use_storage(client: TestClient, storage: FileStorage) -> None:
    client.app.dependency_overrides[get_file_storage] = lambda: storage


def login_as(client, email: str = "admin@finance.test", password: str = "password123"):
    """Register (first account becomes admin) and log in; the client keeps the cookie."""
    r = client.post("/auth/register", json={"email": email, "password": password, "name": "Finance"})
    assert r.status_code == 200, r.text
    r = client.post("/auth/login", json={"email": email, "password": password})
    assert r.status_code == 200, r.text
    return r.json()["user"]
