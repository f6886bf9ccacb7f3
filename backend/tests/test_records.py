import logging
from pathlib import Path
from urllib.parse import unquote

import pytest
from fastapi import status

from app.models.user import User, UserRole
from app.storage.base import UploadFailedError
from app.storage.inline import InlineBackend
from app.storage.service import FileStorage

from conftest import GITHUB_SHA, UPLOAD_ROOT, login_as, use_storage


def _local_path(file_url: str) -> Path:
    return Path(UPLOAD_ROOT) / unquote(file_url).lstrip("/")


class BrokenBackend:
    name = "broken"

    def upload(self, item):
        raise OSError("read-only file system")

    def can_delete(self, locator):
        return False


def test_budget_crud_with_file_replacement(client):
    login_as(client)
    r = client.post(
        "/budgets",
        data={"financial_year": "2023-24", "description": "Annual budget"},
        files={"file": ("budget.pdf", b"%PDF-1", "application/pdf")},
    )
    assert r.status_code == status.HTTP_200_OK, r.text
    budget = r.json()
    assert budget["file_backend"] == "local"
    assert budget["file_url"].startswith("/uploads/budget-files/")
    assert budget["file_name"].endswith("-budget.pdf")
    assert budget["file_sha"] is None
    old_file = _local_path(budget["file_url"])
    assert old_file.read_bytes() == b"%PDF-1"

    r = client.get("/budgets")
    assert [b["id"] for b in r.json()] == [budget["id"]]

    # Metadata-only update keeps the file
    r = client.put(f"/budgets/{budget['id']}", data={"description": "Revised"})
    assert r.status_code == status.HTTP_200_OK
    assert r.json()["description"] == "Revised"
    assert r.json()["financial_year"] == "2023-24"
    assert r.json()["file_url"] == budget["file_url"]

    # New file replaces and purges the previous one
    r = client.put(
        f"/budgets/{budget['id']}",
        files={"file": ("budget-v2.pdf", b"%PDF-2", "application/pdf")},
    )
    assert r.status_code == status.HTTP_200_OK
    updated = r.json()
    assert updated["file_name"].endswith("-budget-v2.pdf")
    assert not old_file.exists()
    new_file = _local_path(updated["file_url"])
    assert new_file.read_bytes() == b"%PDF-2"

    r = client.get(f"/budgets/{budget['id']}/file", follow_redirects=False)
    assert r.status_code == status.HTTP_307_TEMPORARY_REDIRECT
    assert r.headers["location"] == updated["file_url"]

    r = client.delete(f"/budgets/{budget['id']}")
    assert r.status_code == status.HTTP_200_OK
    assert r.json()["ok"] is True
    assert not new_file.exists()
    assert client.get(f"/budgets/{budget['id']}").status_code == status.HTTP_404_NOT_FOUND


def test_budgets_ordered_by_financial_year(client):
    login_as(client)
    for fy in ["2021-22", "2023-24", "2022-23"]:
        r = client.post("/budgets", data={"financial_year": fy, "description": f"Budget {fy}"})
        assert r.status_code == status.HTTP_200_OK
    r = client.get("/budgets")
    assert [b["financial_year"] for b in r.json()] == ["2023-24", "2022-23", "2021-22"]

    r = client.get("/budgets", params={"financial_year": "2022-23"})
    assert [b["financial_year"] for b in r.json()] == ["2022-23"]


def test_rules_regulations_type_and_filters(client):
    login_as(client)
    r = client.post("/rules-regulations", data={"year": 2023, "type": "regulations", "description": "Audit"})
    assert r.status_code == status.HTTP_200_OK
    assert r.json()["type"] == "Regulations"

    r = client.post("/rules-regulations", data={"year": 2024, "description": "Procurement"})
    assert r.status_code == status.HTTP_200_OK
    assert r.json()["type"] == "Rules"

    r = client.post("/rules-regulations", data={"year": 2024, "type": "Guidelines", "description": "x"})
    assert r.status_code == status.HTTP_400_BAD_REQUEST

    r = client.get("/rules-regulations")
    assert [x["year"] for x in r.json()] == [2024, 2023]
    r = client.get("/rules-regulations", params={"type": "Regulations"})
    assert [x["description"] for x in r.json()] == ["Audit"]
    r = client.get("/rules-regulations", params={"year": 2024})
    assert [x["description"] for x in r.json()] == ["Procurement"]


def test_download_with_remote_file_keeps_path_and_sha(client, github_storage, fake_github):
    login_as(client)
    use_storage(client, github_storage)
    r = client.post(
        "/downloads",
        data={"year": 2024, "description": "Tender form"},
        files={"file": ("tender.docx", b"PK\x03\x04", "application/octet-stream")},
    )
    assert r.status_code == status.HTTP_200_OK, r.text
    download = r.json()
    assert download["file_backend"] == "github"
    assert download["file_sha"] == GITHUB_SHA
    assert download["file_path"].startswith("public/uploads/download-files/")
    assert download["file_url"].startswith("https://raw.githubusercontent.com/")

    r = client.get("/downloads", params={"year": 2024})
    assert len(r.json()) == 1
    assert client.get("/downloads", params={"year": 2020}).json() == []

    r = client.delete(f"/downloads/{download['id']}")
    assert r.status_code == status.HTTP_200_OK
    method, path, body = fake_github.requests[-1]
    assert method == "DELETE"
    assert path.endswith(download["file_path"])
    assert body["sha"] == GITHUB_SHA


def test_record_delete_survives_remote_delete_failure(client, github_storage, fake_github):
    login_as(client)
    use_storage(client, github_storage)
    r = client.post(
        "/downloads",
        data={"year": 2022, "description": "Old form"},
        files={"file": ("old.pdf", b"%PDF", "application/pdf")},
    )
    download_id = r.json()["id"]

    fake_github.fail_with = 404
    r = client.delete(f"/downloads/{download_id}")
    assert r.status_code == status.HTTP_200_OK
    assert client.get(f"/downloads/{download_id}").status_code == status.HTTP_404_NOT_FOUND


def test_latest_update_inline_file_download(client):
    login_as(client)
    use_storage(client, FileStorage([InlineBackend()]))
    r = client.post(
        "/latest-updates",
        data={"description": "Budget session notice"},
        files={"file": ("notice ü.txt", b"hello", "text/plain")},
    )
    assert r.status_code == status.HTTP_200_OK, r.text
    update = r.json()
    assert update["file_backend"] == "inline"
    assert update["file_url"].startswith("data:text/plain;base64,")

    r = client.get(f"/latest-updates/{update['id']}/file")
    assert r.status_code == status.HTTP_200_OK
    assert r.content == b"hello"
    assert r.headers["content-type"].startswith("text/plain")
    assert "filename*=UTF-8''" in r.headers["content-disposition"]


def test_latest_updates_newest_first_and_no_file(client):
    login_as(client)
    first = client.post("/latest-updates", data={"description": "first"}).json()
    second = client.post("/latest-updates", data={"description": "second"}).json()

    r = client.get("/latest-updates")
    assert [u["id"] for u in r.json()] == [second["id"], first["id"]]

    r = client.get(f"/latest-updates/{first['id']}/file")
    assert r.status_code == status.HTTP_404_NOT_FOUND
    assert r.json()["detail"] == "No file attached"


def test_failed_upload_creates_no_record(client):
    login_as(client)
    use_storage(client, FileStorage([BrokenBackend()]))
    r = client.post(
        "/budgets",
        data={"financial_year": "2024-25", "description": "Draft"},
        files={"file": ("draft.pdf", b"%PDF", "application/pdf")},
    )
    assert r.status_code == status.HTTP_500_INTERNAL_SERVER_ERROR
    assert r.json()["detail"] == "Failed to upload file"
    assert client.get("/budgets").json() == []


def test_invalid_record_input_is_rejected(client):
    login_as(client)
    r = client.post("/downloads", data={"year": "not-a-year", "description": "x"})
    assert r.status_code == 422
    r = client.post("/budgets", data={"financial_year": "2024-25"})
    assert r.status_code == 422
    assert client.put("/budgets/999", data={"description": "x"}).status_code == status.HTTP_404_NOT_FOUND


def test_records_require_auth_and_writer_role(client, db_session):
    assert client.get("/budgets").status_code == status.HTTP_401_UNAUTHORIZED

    login_as(client)
    client.post("/latest-updates", data={"description": "visible to all"})
    client.post("/auth/logout")
    user = login_as(client, email="reader@finance.test")
    db_user = db_session.get(User, user["id"])
    db_user.role = UserRole.viewer
    db_session.commit()

    assert client.get("/latest-updates").status_code == status.HTTP_200_OK
    r = client.post("/latest-updates", data={"description": "nope"})
    assert r.status_code == status.HTTP_403_FORBIDDEN
    assert client.delete("/latest-updates/1").status_code == status.HTTP_403_FORBIDDEN


def test_upload_failed_error_lists_backends():
    err = UploadFailedError([("github", RuntimeError("HTTP 500")), ("local", OSError("disk full"))])
    assert "github: HTTP 500" in str(err)
    assert "local: disk full" in str(err)


def _failing_commit(*args, **kwargs):
    raise RuntimeError("database is locked")


def test_create_commit_failure_purges_uploaded_file(client, db_session, monkeypatch):
    login_as(client)
    bucket_dir = Path(UPLOAD_ROOT) / "uploads" / "budget-files"
    monkeypatch.setattr(db_session, "commit", _failing_commit)
    with pytest.raises(RuntimeError):
        client.post(
            "/budgets",
            data={"financial_year": "2025-26", "description": "Never saved"},
            files={"file": ("commit-fails.pdf", b"%PDF", "application/pdf")},
        )
    monkeypatch.undo()

    assert list(bucket_dir.glob("*-commit-fails.pdf")) == []
    assert client.get("/budgets").json() == []


def test_update_commit_failure_keeps_old_file_and_purges_new(client, db_session, monkeypatch):
    login_as(client)
    budget = client.post(
        "/budgets",
        data={"financial_year": "2025-26", "description": "Original"},
        files={"file": ("keep-me.pdf", b"%PDF-old", "application/pdf")},
    ).json()
    old_file = _local_path(budget["file_url"])

    monkeypatch.setattr(db_session, "commit", _failing_commit)
    with pytest.raises(RuntimeError):
        client.put(
            f"/budgets/{budget['id']}",
            data={"description": "Changed"},
            files={"file": ("replacement-fails.pdf", b"%PDF-new", "application/pdf")},
        )
    monkeypatch.undo()

    assert old_file.read_bytes() == b"%PDF-old"
    assert list(old_file.parent.glob("*-replacement-fails.pdf")) == []
    current = client.get(f"/budgets/{budget['id']}").json()
    assert current["description"] == "Original"
    assert current["file_url"] == budget["file_url"]


def test_delete_commit_failure_is_logged(client, db_session, monkeypatch, caplog):
    login_as(client)
    budget = client.post(
        "/budgets",
        data={"financial_year": "2025-26", "description": "Sticky"},
        files={"file": ("sticky.pdf", b"%PDF", "application/pdf")},
    ).json()

    monkeypatch.setattr(db_session, "commit", _failing_commit)
    with caplog.at_level(logging.ERROR, logger="fa.records"):
        with pytest.raises(RuntimeError):
            client.delete(f"/budgets/{budget['id']}")
    monkeypatch.undo()

    assert any("record_delete_failed" in rec.getMessage() for rec in caplog.records)
    assert client.get(f"/budgets/{budget['id']}").status_code == status.HTTP_200_OK
