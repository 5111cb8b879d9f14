"""Tests for the HTTP API."""

import pytest
from fastapi.testclient import TestClient

from tablemigrate.api.main import create_app
from tablemigrate.api.storage import migration_storage
from tablemigrate.orchestrator import MigrationOrchestrator

from tests.helpers.fakes import InMemoryTarget, make_rows


@pytest.fixture
def client(config, source, target):
    migration_storage.clear()
    app = create_app(
        config=config,
        orchestrator_factory=lambda c: MigrationOrchestrator(c, source=source, target=target),
    )
    with TestClient(app) as test_client:
        yield test_client
    migration_storage.clear()


def test_health(client):
    response = client.get("/api/health")
    assert response.status_code == 200
    assert response.json() == {"status": "healthy"}


class TestMigrations:
    def test_submit_and_inspect(self, client, target):
        response = client.post("/api/migrations", json={"name": "hr", "tables": ["dbo.Employees:EMPLOYEES"]})
        assert response.status_code == 202
        migration_id = response.json()["id"]

        response = client.get(f"/api/migrations/{migration_id}")
        assert response.status_code == 200
        data = response.json()
        assert data["status"] == "completed"
        assert data["runs"][0]["status"] == "completed"
        assert data["runs"][0]["data_move"]["rows_written"] == 25
        assert len(target.rows("EMPLOYEES")) == 25

    def test_overrides_are_applied(self, client):
        response = client.post("/api/migrations", json={
            "tables": ["dbo.Employees:EMPLOYEES"],
            "reconcile": False,
            "chunk_size": 5,
        })
        data = client.get(f"/api/migrations/{response.json()['id']}").json()

        assert data["runs"][0]["reconciliation"] is None
        assert data["runs"][0]["data_move"]["batches_written"] == 5

    def test_failed_table_marks_migration_failed(self, client):
        response = client.post("/api/migrations", json={"tables": ["dbo.Missing:MISSING"]})
        data = client.get(f"/api/migrations/{response.json()['id']}").json()

        assert data["status"] == "failed"
        assert data["runs"][0]["errors"][0]["error_type"] == "SchemaRetrievalError"

    def test_list(self, client):
        client.post("/api/migrations", json={"tables": ["dbo.Employees:EMPLOYEES"]})
        client.post("/api/migrations", json={"tables": ["dbo.Missing"]})

        data = client.get("/api/migrations").json()
        assert data["total"] == 2
        assert [m["status"] for m in data["migrations"]] == ["completed", "failed"]

    def test_invalid_requests(self, client):
        assert client.post("/api/migrations", json={"tables": []}).status_code == 422
        assert client.post("/api/migrations", json={"tables": ["[dbo.Employees"]}).status_code == 422
        assert client.post("/api/migrations", json={"tables": ["T"], "chunk_size": 0}).status_code == 422

    def test_unknown_migration(self, client):
        assert client.get("/api/migrations/nope").status_code == 404
        assert client.post("/api/migrations/nope/cancel").status_code == 404

    def test_cannot_cancel_finished_migration(self, client):
        response = client.post("/api/migrations", json={"tables": ["dbo.Employees:EMPLOYEES"]})
        response = client.post(f"/api/migrations/{response.json()['id']}/cancel")
        assert response.status_code == 400


class TestReconcile:
    def test_reconcile_loaded_table(self, client, target):
        target.tables["EMPLOYEES"] = [{k.upper(): v for k, v in row.items()} for row in make_rows(25)]

        response = client.post("/api/reconcile", json={"tables": ["dbo.Employees:EMPLOYEES"]})

        assert response.status_code == 200
        data = response.json()
        assert data["matched"] is True
        assert data["reports"][0]["row_count"] == {"source": 25, "target": 25}

    def test_fail_policy_still_returns_report(self, client, target):
        rows = [{k.upper(): v for k, v in row.items()} for row in make_rows(25)]
        rows[0]["EXTRA"] = 1
        target.tables["EMPLOYEES"] = rows

        response = client.post("/api/reconcile", json={
            "tables": ["dbo.Employees:EMPLOYEES"],
            "missing_column_policy": "fail",
        })

        data = response.json()
        assert data["matched"] is False
        assert "EXTRA" in data["reports"][0]["missing_columns"]

    def test_unreadable_table(self, config, source):
        app = create_app(
            config=config,
            orchestrator_factory=lambda c: MigrationOrchestrator(c, source=source, target=InMemoryTarget()),
        )
        with TestClient(app) as client:
            response = client.post("/api/reconcile", json={"tables": ["dbo.Unknown:UNKNOWN"]})
        assert response.status_code == 502
