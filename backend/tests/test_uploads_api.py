from fastapi import status

from app.core.config import get_settings
from app.models.user import User, UserRole
from app.storage.github import GitHubContentsBackend
from app.storage.inline import InlineBackend
from app.storage.service import FileStorage, StorageConfig, build_storage

from conftest import GITHUB_SHA, UPLOAD_ROOT, FakeGitHub, login_as, use_storage


def _upload(client, bucket="budgets", name="a.txt", content=b"0123456789", content_type="text/plain", path="/api/upload"):
    return client.post(path, data={"bucket": bucket}, files={"file": (name, content, content_type)})


def test_upload_requires_auth(client):
    r = _upload(client)
    assert r.status_code == status.HTTP_401_UNAUTHORIZED


def test_upload_falls_back_to_local_and_is_served(client):
    login_as(client)
    r = _upload(client)
    assert r.status_code == status.HTTP_200_OK, r.text
    body = r.json()
    assert body["fileName"].endswith("-a.txt")
    assert body["fileUrl"] == f"/uploads/budget-files/{body['fileName']}"
    assert body["fileSize"] == 10
    assert body["fileType"] == "text/plain"
    assert "githubSha" not in body

    served = client.get(body["fileUrl"])
    assert served.status_code == status.HTTP_200_OK
    assert served.content == b"0123456789"


def test_local_upload_with_reserved_characters_is_served_and_deleted(client):
    login_as(client)
    body = _upload(client, name="q#1 50%.txt", content=b"hash name").json()
    assert body["fileName"].endswith("-q#1 50%.txt")
    assert "#" not in body["fileUrl"]

    served = client.get(body["fileUrl"])
    assert served.status_code == status.HTTP_200_OK
    assert served.content == b"hash name"

    r = client.delete("/api/upload", params={"fileUrl": body["fileUrl"]})
    assert r.json() == {"success": True}
    assert client.get(body["fileUrl"]).status_code == status.HTTP_404_NOT_FOUND


def test_upload_rejects_invalid_bucket_and_missing_file(client):
    login_as(client)
    r = _upload(client, bucket="nonexistent")
    assert r.status_code == status.HTTP_400_BAD_REQUEST
    assert r.json() == {"error": "Invalid bucket"}

    r = client.post("/api/upload", data={"bucket": "budgets"})
    assert r.status_code == status.HTTP_400_BAD_REQUEST
    assert r.json() == {"error": "No file provided"}


def test_upload_too_large(client, monkeypatch):
    login_as(client)
    monkeypatch.setattr(get_settings(), "upload_max_bytes", 4)
    r = _upload(client)
    assert r.status_code == status.HTTP_413_REQUEST_ENTITY_TOO_LARGE
    assert r.json()["error"] == "File too large"


def test_upload_reports_generic_failure_when_every_backend_fails(client):
    login_as(client)
    fake = FakeGitHub(fail_with=502)
    remote = GitHubContentsBackend(token="t", owner="o", repo="r", transport=fake.transport)
    use_storage(client, FileStorage([remote]))
    r = _upload(client)
    assert r.status_code == status.HTTP_500_INTERNAL_SERVER_ERROR
    assert r.json() == {"error": "Failed to upload file"}


def test_upload_prefers_remote_when_available(client, github_storage, fake_github):
    login_as(client)
    use_storage(client, github_storage)
    r = _upload(client, bucket="rules", name="rules 2024.pdf", content_type="application/pdf")
    assert r.status_code == status.HTTP_200_OK, r.text
    body = r.json()
    assert body["githubSha"] == GITHUB_SHA
    assert body["filePath"] == f"public/uploads/rules-files/{body['fileName']}"
    assert body["fileUrl"].startswith("https://raw.githubusercontent.com/finance-office/finance-files/main/")
    assert "rules%202024.pdf" in body["fileUrl"]
    assert fake_github.requests[0][0] == "PUT"


def test_delete_requires_some_locator(client):
    login_as(client)
    r = client.delete("/api/upload")
    assert r.status_code == status.HTTP_400_BAD_REQUEST
    assert r.json() == {"error": "No file URL provided"}


def test_delete_removes_local_file_and_is_idempotent(client):
    login_as(client)
    body = _upload(client, bucket="downloads").json()

    r = client.delete("/api/upload", params={"fileUrl": body["fileUrl"]})
    assert r.status_code == status.HTTP_200_OK
    assert r.json() == {"success": True}
    assert client.get(body["fileUrl"]).status_code == status.HTTP_404_NOT_FOUND

    r = client.delete("/api/upload", params={"fileUrl": body["fileUrl"]})
    assert r.json() == {"success": True}


def test_delete_reports_success_even_when_remote_fails(client):
    login_as(client)
    fake = FakeGitHub(fail_with=500)
    use_storage(client, build_storage(StorageConfig(local_root=UPLOAD_ROOT, github_token="t"), transport=fake.transport))
    r = client.delete(
        "/api/upload",
        params={"fileUrl": "https://raw.githubusercontent.com/x/y/main/a.pdf", "filePath": "a.pdf", "sha": "abc"},
    )
    assert r.status_code == status.HTTP_200_OK
    assert r.json() == {"success": True}
    assert fake.requests[0][0] == "DELETE"


def test_github_upload_surfaces_remote_errors(client):
    login_as(client)
    fake = FakeGitHub(fail_with=401)
    use_storage(client, build_storage(StorageConfig(local_root=UPLOAD_ROOT, github_token="bad"), transport=fake.transport))
    r = _upload(client, path="/api/github-upload")
    assert r.status_code == status.HTTP_500_INTERNAL_SERVER_ERROR
    assert r.json() == {"error": "Failed to upload to GitHub", "details": "Bad credentials"}


def test_github_upload_and_delete(client, github_storage, fake_github):
    login_as(client)
    use_storage(client, github_storage)
    body = _upload(client, bucket="updates", path="/api/github-upload").json()
    assert body["githubSha"] == GITHUB_SHA

    r = client.delete("/api/github-upload", params={"filePath": body["filePath"]})
    assert r.status_code == status.HTTP_400_BAD_REQUEST
    assert r.json() == {"error": "File path and SHA required"}

    r = client.delete("/api/github-upload", params={"filePath": body["filePath"], "sha": body["githubSha"]})
    assert r.status_code == status.HTTP_200_OK
    method, _, payload = fake_github.requests[-1]
    assert method == "DELETE"
    assert payload["sha"] == GITHUB_SHA


def test_github_upload_without_remote_backend(client):
    login_as(client)
    use_storage(client, FileStorage([InlineBackend()]))
    r = _upload(client, path="/api/github-upload")
    assert r.status_code == status.HTTP_500_INTERNAL_SERVER_ERROR
    assert r.json()["error"] == "GitHub storage not configured"


def test_viewer_cannot_upload(client, db_session):
    login_as(client)
    client.post("/auth/logout")
    user = login_as(client, email="viewer@finance.test")
    db_user = db_session.get(User, user["id"])
    db_user.role = UserRole.viewer
    db_session.commit()

    r = _upload(client)
    assert r.status_code == status.HTTP_403_FORBIDDEN
