"""HTTP-level tests: routes, dependency wiring and error mapping."""

from unittest.mock import patch

import pytest
from fastapi.testclient import TestClient

from book_catalog.api.dependencies import get_medium
from book_catalog.main import create_app
from book_catalog.core.errors import StaleIndexError
from book_catalog.records.catalog import RecordCatalog
from book_catalog.storage.chunked_store import ChunkedStore
from book_catalog.storage.medium import MemoryMedium

CSV_DOCUMENT = (
    "書名,作者,集數,類別,出版社\n"
    "三體,劉慈欣,第一集,科幻,重慶出版社\n"
    "三體,劉慈欣,1,科幻,重慶出版社\n"
    "Dune,Frank Herbert,one,SF,Chilton\n"
)


@pytest.fixture
def api_medium():
    return MemoryMedium()


@pytest.fixture
def client(api_medium):
    app = create_app()
    app.dependency_overrides[get_medium] = lambda: api_medium
    with TestClient(app) as c:
        yield c


class TestHealth:

    def test_health(self, client):
        resp = client.get("/health")
        assert resp.status_code == 200
        assert resp.json() == {"status": "ok"}

    def test_startup_writes_indexes(self, client, api_medium):
        assert api_medium.get("books_chunk_info") is not None
        assert api_medium.get("trash_chunk_info") is not None


class TestRecords:

    def test_crud_flow(self, client):
        resp = client.post("/records", json={"title": "Dune", "author": "Herbert"})
        assert resp.status_code == 201
        record_id = resp.json()["id"]

        resp = client.get(f"/records/{record_id}")
        assert resp.json()["title"] == "Dune"

        resp = client.patch(f"/records/{record_id}", json={"status": "借出"})
        assert resp.status_code == 200
        assert resp.json()["status"] == "借出"

        resp = client.delete(f"/records/{record_id}")
        assert resp.json()["status"] == "deleted"

        resp = client.get("/records")
        assert resp.json() == {"records": [], "total": 0}

    def test_missing_record_is_404(self, client):
        resp = client.get("/records/nope")
        assert resp.status_code == 404
        assert resp.json()["error"] == "record_not_found"

    def test_write_conflict_is_409(self, client):
        with patch.object(ChunkedStore, "save", side_effect=StaleIndexError("moved")):
            resp = client.post("/records", json={"title": "Dune"})

        assert resp.status_code == 409
        assert resp.json()["error"] == "stale_index"
        assert client.get("/records").json()["total"] == 0

    def test_duplicate_id_is_422(self, client):
        client.post("/records", json={"id": "x", "title": "A"})
        resp = client.post("/records", json={"id": "x", "title": "B"})
        assert resp.status_code == 422
        assert resp.json()["error"] == "validation_error"

    def test_search_with_filters(self, client):
        client.post("/records", json={"title": "Dune", "category": "SF", "status": "在架"})
        client.post("/records", json={"title": "Dune Messiah", "category": "SF", "status": "借出"})
        client.post("/records", json={"title": "三體", "category": "科幻"})

        resp = client.get("/records/search", params={"q": "dune", "status": "借出"})
        data = resp.json()
        assert data["total"] == 1
        assert data["records"][0]["title"] == "Dune Messiah"


class TestAdmin:

    def test_import_dedupe_and_trash(self, client):
        resp = client.post("/admin/import", json={"document": CSV_DOCUMENT})
        assert resp.json() == {"imported": 2, "filtered": 1, "updated": 0}

        client.post("/records", json={
            "title": "Dune", "author": "Frank Herbert", "series": "1",
            "createdAt": "2099-01-01T00:00:00Z",
        })
        resp = client.post("/admin/dedupe", json={"fields": ["title", "author", "series"]})
        body = resp.json()
        assert body["removed"] == 1
        assert body["total"] == 2

        trash = client.get("/admin/trash").json()
        assert trash["total"] == 1
        trashed_id = trash["records"][0]["id"]
        assert trashed_id == body["removed_ids"][0]

        resp = client.post(f"/admin/trash/{trashed_id}/restore")
        assert resp.json()["status"] == "restored"
        assert client.get("/records").json()["total"] == 3

    def test_import_rejects_bad_document(self, client):
        resp = client.post("/admin/import", json={"document": "ISBN號,ISBN\n1,2\n"})
        assert resp.status_code == 422
        assert resp.json()["error"] == "validation_error"

    def test_dedupe_with_no_fields(self, client):
        resp = client.post("/admin/dedupe", json={"fields": []})
        assert resp.status_code == 422

    def test_export(self, client):
        client.post("/admin/import", json={"document": CSV_DOCUMENT})
        resp = client.get("/admin/export")

        assert resp.status_code == 200
        assert resp.headers["content-type"].startswith("text/csv")
        assert "attachment" in resp.headers["content-disposition"]
        assert resp.text.splitlines()[0].startswith("書名,作者")

    def test_trash_cleanup(self, client):
        resp = client.post("/admin/trash/cleanup", json={"days": 0})
        assert resp.status_code == 200
        assert resp.json()["count"] == 0

    def test_storage_stats(self, client):
        client.post("/records", json={"title": "Dune"})
        data = client.get("/admin/storage").json()
        assert data["records"]["totalChunks"] == 1
        assert data["trash"]["totalChunks"] == 0

    def test_corrupt_store_is_reported(self, client, api_medium):
        client.post("/records", json={"title": "Dune"})
        api_medium.remove("books_chunk_0")

        resp = client.get("/records")
        assert resp.status_code == 500
        assert resp.json()["error"] == "corrupt_store"


class TestBackups:

    def test_backup_lifecycle(self, client):
        assert client.post("/backups").status_code == 422

        client.post("/records", json={"id": "1", "title": "Dune"})
        resp = client.post("/backups")
        assert resp.status_code == 201
        backup_id = resp.json()["id"]
        assert resp.json()["record_count"] == 1

        client.delete("/records/1")
        resp = client.post(f"/backups/{backup_id}/restore")
        assert resp.json()["last_restored"] is not None
        assert client.get("/records/1").json()["title"] == "Dune"

        assert [b["id"] for b in client.get("/backups").json()] == [backup_id]
        assert client.delete(f"/backups/{backup_id}").json()["status"] == "deleted"
        assert client.delete(f"/backups/{backup_id}").status_code == 404


class TestUnhandledErrors:

    def test_generic_500_without_details(self, api_medium):
        app = create_app()
        app.dependency_overrides[get_medium] = lambda: api_medium

        with TestClient(app, raise_server_exceptions=False) as c:
            with patch.object(RecordCatalog, "list", side_effect=RuntimeError("secret detail")):
                resp = c.get("/records")

        assert resp.status_code == 500
        assert resp.json() == {
            "error": "internal_server_error",
            "detail": "Internal server error",
        }
