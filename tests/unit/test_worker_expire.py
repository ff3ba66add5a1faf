"""POST /worker/expire-overdue のユニットテスト

インメモリストア上の実エンジンを使い、期限切れタスクが failed になることを検証する。
"""

import pytest
from chorequest.domain.models import NewTask, TaskStatus
from chorequest.entrypoints.api.app import app
from chorequest.entrypoints.api.deps import get_task_engine
from fastapi.testclient import TestClient


@pytest.fixture
def worker_client(engine, monkeypatch):
    monkeypatch.setenv("LOCAL_MODE", "true")
    app.dependency_overrides[get_task_engine] = lambda: engine

    with TestClient(app) as c:
        yield c

    app.dependency_overrides.clear()


class TestExpireOverdue:
    """期限切れ一括処理のテスト"""

    def test_expires_overdue_tasks(self, worker_client, engine, parent, task_repo):
        overdue = engine.create_task(
            parent, NewTask(title="Prošlý", reward_points=5, deadline="2026-10-18")
        )
        engine.create_task(parent, NewTask(title="Budoucí", reward_points=5, deadline="2026-10-30"))

        response = worker_client.post("/worker/expire-overdue")

        assert response.status_code == 200
        data = response.json()
        assert data["expired"] == 1
        assert data["task_ids"] == [overdue.id]
        assert task_repo.get(overdue.id).status is TaskStatus.FAILED

    def test_now_can_be_overridden(self, worker_client, engine, parent, task_repo):
        """ペイロードの now で判定時刻を指定できる"""
        task = engine.create_task(
            parent, NewTask(title="Budoucí", reward_points=5, deadline="2026-10-30")
        )
        response = worker_client.post(
            "/worker/expire-overdue", json={"now": "2026-11-01T00:00:00Z"}
        )
        assert response.json()["expired"] == 1
        assert task_repo.get(task.id).status is TaskStatus.FAILED

    def test_invalid_now_returns_400(self, worker_client):
        response = worker_client.post("/worker/expire-overdue", json={"now": "not-a-date"})
        assert response.status_code == 400
