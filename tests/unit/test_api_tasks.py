"""FastAPI タスク API のユニットテスト

dependency_overrides で ActorContext を固定し、インメモリストア上の
実 TaskEngine を差し込む。
"""

from unittest.mock import MagicMock

import pytest
from chorequest.domain.errors import TaskAlreadyClaimedError
from chorequest.domain.models import ActorContext, NewTask, Role
from chorequest.entrypoints.api.app import app
from chorequest.entrypoints.api.deps import get_actor, get_task_engine
from chorequest.services.task_engine import TaskEngine
from fastapi.testclient import TestClient

from tests.conftest import CHILD1_ID, CHILD2_ID


class _Acting:
    """テスト中に操作者を切り替えるためのホルダー"""

    def __init__(self, actor: ActorContext) -> None:
        self.actor = actor

    def get(self) -> ActorContext:
        return self.actor


@pytest.fixture
def acting(parent):
    return _Acting(parent)


@pytest.fixture
def client(acting, engine):
    app.dependency_overrides[get_actor] = acting.get
    app.dependency_overrides[get_task_engine] = lambda: engine

    with TestClient(app) as c:
        yield c

    app.dependency_overrides.clear()


def _create(client, **fields) -> dict:
    body = {"title": "Vyluxovat", "reward_points": 50, **fields}
    response = client.post("/api/tasks", json=body)
    assert response.status_code == 201
    return response.json()


class TestCreateTask:
    """POST /api/tasks のテスト"""

    def test_creates_todo_task(self, client):
        data = _create(client, deadline="2026-10-20T18:00:00Z", requires_proof=True)
        assert data["status"] == "todo"
        assert data["requires_proof"] is True
        assert data["deadline"].startswith("2026-10-20T18:00:00")
        assert data["assigned_to"] is None

    def test_child_gets_403(self, client, acting, child1):
        acting.actor = child1
        response = client.post("/api/tasks", json={"title": "Hrát hry", "reward_points": 100})
        assert response.status_code == 403
        assert response.json()["code"] == "PERMISSION_DENIED"

    def test_zero_reward_returns_422(self, client):
        response = client.post("/api/tasks", json={"title": "Úklid", "reward_points": 0})
        assert response.status_code == 422
        assert response.json()["code"] == "VALIDATION_ERROR"

    def test_bad_deadline_returns_422(self, client):
        response = client.post(
            "/api/tasks", json={"title": "Úklid", "reward_points": 5, "deadline": "not-a-date"}
        )
        assert response.status_code == 422


class TestQuestFlow:
    """作成 → 報告 → 承認の一連のフロー"""

    def test_submit_and_approve(self, client, acting, parent, child1, member_repo):
        task = _create(client)

        acting.actor = child1
        submitted = client.post(f"/api/tasks/{task['id']}/submit")
        assert submitted.status_code == 200
        assert submitted.json()["status"] == "pending_approval"
        assert submitted.json()["assigned_to"] == CHILD1_ID

        acting.actor = parent
        approved = client.post(f"/api/tasks/{task['id']}/approve")
        assert approved.status_code == 200
        assert approved.json()["status"] == "done"
        assert member_repo.get(CHILD1_ID).points == 50

    def test_submit_with_photo(self, client, acting, child1, mock_photos):
        task = _create(client, requires_proof=True)

        acting.actor = child1
        response = client.post(
            f"/api/tasks/{task['id']}/submit",
            files={"photo": ("pokoj.jpg", b"\xff\xd8\xff-fake", "image/jpeg")},
        )
        assert response.status_code == 200
        assert response.json()["proof_url"].startswith("https://storage.example.com/proofs/")
        mock_photos.upload.assert_called_once()

    def test_requires_proof_without_photo_returns_422(self, client, acting, child1):
        task = _create(client, requires_proof=True)
        acting.actor = child1
        response = client.post(f"/api/tasks/{task['id']}/submit")
        assert response.status_code == 422

    def test_second_claim_returns_409_already_claimed(self, client, acting, child1, child2):
        """先に報告されたタスクへの報告は 409 TASK_ALREADY_CLAIMED"""
        task = _create(client)

        acting.actor = child1
        client.post(f"/api/tasks/{task['id']}/submit")

        acting.actor = child2
        response = client.post(f"/api/tasks/{task['id']}/submit")
        assert response.status_code == 409
        assert response.json()["code"] == "TASK_ALREADY_CLAIMED"

    def test_reject_with_reason(self, client, acting, parent, child1):
        task = _create(client)
        acting.actor = child1
        client.post(f"/api/tasks/{task['id']}/submit")

        acting.actor = parent
        response = client.post(
            f"/api/tasks/{task['id']}/reject", json={"reason": "Pod postelí je prach"}
        )
        assert response.status_code == 200
        data = response.json()
        assert data["status"] == "todo"
        assert data["assigned_to"] == CHILD1_ID
        assert data["rejection_reason"] == "Pod postelí je prach"

    def test_approve_todo_returns_409(self, client):
        task = _create(client)
        response = client.post(f"/api/tasks/{task['id']}/approve")
        assert response.status_code == 409
        assert response.json()["code"] == "CONFLICT"


class TestOrphanedProof:
    """受注競争に負けた際のアップロード済み写真の扱い"""

    def test_orphaned_proof_url_is_returned(self, acting, child1):
        engine = MagicMock(spec=TaskEngine)
        engine.submit_completion.side_effect = TaskAlreadyClaimedError(
            "claimed", orphaned_proof_url="https://storage.example.com/proofs/h/t/x.jpg"
        )
        acting.actor = child1
        app.dependency_overrides[get_actor] = acting.get
        app.dependency_overrides[get_task_engine] = lambda: engine
        try:
            with TestClient(app) as c:
                response = c.post(
                    "/api/tasks/t1/submit",
                    files={"photo": ("a.jpg", b"\xff\xd8\xff", "image/jpeg")},
                )
        finally:
            app.dependency_overrides.clear()

        assert response.status_code == 409
        assert response.json()["orphaned_proof_url"].endswith("x.jpg")


class TestListAndStats:
    """GET /api/tasks, GET /api/tasks/stats のテスト"""

    def test_filter_by_status_and_assignee(self, client, engine, parent, child1):
        a = engine.create_task(parent, NewTask(title="A", reward_points=1))
        engine.create_task(parent, NewTask(title="B", reward_points=1, assigned_to=CHILD2_ID))
        engine.submit_completion(child1, a.id)

        pending = client.get("/api/tasks", params={"status": "pending_approval"}).json()
        assert [t["title"] for t in pending] == ["A"]
        mine = client.get("/api/tasks", params={"assigned_to": CHILD2_ID}).json()
        assert [t["title"] for t in mine] == ["B"]

    def test_unknown_status_returns_422(self, client):
        assert client.get("/api/tasks", params={"status": "archived"}).status_code == 422

    def test_stats(self, client, engine, parent, child1):
        a = engine.create_task(parent, NewTask(title="A", reward_points=1))
        engine.create_task(parent, NewTask(title="B", reward_points=1))
        engine.submit_completion(child1, a.id)

        response = client.get("/api/tasks/stats")
        assert response.json() == {"todo": 1, "pending_approval": 1, "done": 0, "failed": 0}


class TestDeadlineAndDelete:
    """PATCH /deadline, DELETE のテスト"""

    def test_extend_deadline(self, client):
        task = _create(client, deadline="2026-10-20")
        response = client.patch(
            f"/api/tasks/{task['id']}/deadline", json={"deadline": "2026-10-27T12:00:00Z"}
        )
        assert response.status_code == 200
        assert response.json()["deadline"].startswith("2026-10-27T12:00:00")
        assert response.json()["status"] == "todo"

    def test_delete_then_get_returns_404(self, client):
        task = _create(client)
        assert client.delete(f"/api/tasks/{task['id']}").status_code == 204
        response = client.get(f"/api/tasks/{task['id']}")
        assert response.status_code == 404
        assert response.json()["code"] == "NOT_FOUND"

    def test_other_house_task_is_404(self, client, acting, engine, parent):
        task = engine.create_task(parent, NewTask(title="A", reward_points=1))
        acting.actor = ActorContext(member_id="x", house_id="other-house", role=Role.PARENT)
        assert client.get(f"/api/tasks/{task.id}").status_code == 404
