"""FirestoreRepository のユニットテスト

Firestore クライアントをモックし、変換・CAS・ポイント加算の書き込み内容を検証する。
"""

import datetime
from unittest.mock import MagicMock

import pytest
from chorequest.adapters.firestore_repository import (
    FirestoreMemberRepository,
    FirestorePushSubscriptionRepository,
    FirestoreTaskRepository,
    _apply_transition,
)
from chorequest.domain.errors import ConflictError, NotFoundError
from chorequest.domain.models import (
    Member,
    PushSubscription,
    Role,
    TaskStatus,
    endpoint_key,
)
from google.api_core import exceptions as gapi_exceptions
from google.cloud import firestore


def _make_snap(doc_id: str, data: dict | None, exists: bool = True) -> MagicMock:
    """Firestore DocumentSnapshot のモックを生成する"""
    snap = MagicMock()
    snap.id = doc_id
    snap.exists = exists
    snap.to_dict.return_value = data
    return snap


class TestTaskNullFallback:
    """Firestore の None 値が Task に変換される際のフォールバックを検証"""

    def _make_repo(self, snaps: list) -> FirestoreTaskRepository:
        mock_db = MagicMock()
        mock_db.collection.return_value.where.return_value.stream.return_value = snaps
        return FirestoreTaskRepository(mock_db)

    def test_nullable_fields_fall_back(self):
        """description / assigned_to 等が None でも Task が生成される"""
        # Arrange
        snaps = [
            _make_snap(
                "t1",
                {
                    "house_id": "h1",
                    "title": "Vyluxovat",
                    "reward_points": 50,
                    "created_by": "p1",
                    "status": "todo",
                    "description": None,
                    "punishment_desc": None,
                    "assigned_to": None,
                    "proof_url": "",
                    "rejection_reason": None,
                },
            )
        ]
        repo = self._make_repo(snaps)

        # Act
        tasks = repo.list_by_house("h1")

        # Assert
        assert len(tasks) == 1
        task = tasks[0]
        assert task.description == ""
        assert task.punishment_desc == ""
        assert task.assigned_to is None
        assert task.proof_url is None
        assert task.status is TaskStatus.TODO

    def test_sorted_by_deadline_with_none_last(self):
        base = {"house_id": "h1", "title": "x", "reward_points": 1, "status": "todo"}
        snaps = [
            _make_snap("none", {**base, "deadline": None}),
            _make_snap("late", {**base, "deadline": datetime.datetime(2026, 10, 30, tzinfo=datetime.UTC)}),
            _make_snap("early", {**base, "deadline": datetime.datetime(2026, 10, 20, tzinfo=datetime.UTC)}),
        ]
        repo = self._make_repo(snaps)
        assert [t.id for t in repo.list_by_house("h1")] == ["early", "late", "none"]

    def test_status_filter_adds_where_clause(self):
        mock_db = MagicMock()
        query = mock_db.collection.return_value.where.return_value
        query.where.return_value.stream.return_value = []
        FirestoreTaskRepository(mock_db).list_by_house("h1", status=TaskStatus.DONE)
        query.where.assert_called_once_with("status", "==", "done")


class TestApplyTransition:
    """トランザクション内の CAS 関数を直接検証する"""

    def _call(self, snap, updates, award_points=False):
        transaction = MagicMock()
        db = MagicMock()
        ref = MagicMock()
        ref.id = "t1"
        ref.get.return_value = snap
        result = _apply_transition.to_wrap(
            transaction, db, ref, TaskStatus.PENDING_APPROVAL, updates, award_points
        )
        return result, transaction, db, ref

    def test_writes_when_status_matches(self):
        snap = _make_snap("t1", {"status": "pending_approval", "assigned_to": "c1", "reward_points": 10})
        result, transaction, _, ref = self._call(snap, {"status": "done"})

        transaction.update.assert_called_once()
        written = transaction.update.call_args[0][1]
        assert written["status"] == "done"
        assert written["updated_at"] is firestore.SERVER_TIMESTAMP
        assert result["status"] == "done"

    def test_raises_conflict_when_status_changed(self):
        snap = _make_snap("t1", {"status": "done"})
        with pytest.raises(ConflictError):
            self._call(snap, {"status": "done"})

    def test_raises_not_found(self):
        with pytest.raises(NotFoundError):
            self._call(_make_snap("t1", None, exists=False), {"status": "done"})

    def test_award_points_increments_assignee_in_same_transaction(self):
        """承認時はタスク更新と同じトランザクションで points を加算する"""
        snap = _make_snap("t1", {"status": "pending_approval", "assigned_to": "c1", "reward_points": 10})
        _, transaction, db, _ = self._call(snap, {"status": "done"}, award_points=True)

        assert transaction.update.call_count == 2
        db.collection.assert_called_with("profiles")
        db.collection.return_value.document.assert_called_with("c1")
        increment = transaction.update.call_args_list[1][0][1]["points"]
        assert isinstance(increment, firestore.Increment)
        assert increment.value == 10


class TestMemberRepository:
    """FirestoreMemberRepository のテスト"""

    def test_create_returns_existing_on_race(self):
        """同時初回アクセスで AlreadyExists になった場合は既存プロファイルを返す"""
        mock_db = MagicMock()
        ref = mock_db.collection.return_value.document.return_value
        ref.create.side_effect = gapi_exceptions.AlreadyExists("exists")
        ref.get.return_value = _make_snap("u1", {"full_name": "Jana", "role": "parent", "points": 7})

        member = FirestoreMemberRepository(mock_db).create(Member(id="u1", full_name="Jana"))

        assert member.role is Role.PARENT
        assert member.points == 7

    def test_assign_missing_profile_raises_not_found(self):
        mock_db = MagicMock()
        ref = mock_db.collection.return_value.document.return_value
        ref.update.side_effect = gapi_exceptions.NotFound("missing")
        with pytest.raises(NotFoundError):
            FirestoreMemberRepository(mock_db).assign("u1", "h1", Role.CHILD)


class TestPushSubscriptionRepository:
    """FirestorePushSubscriptionRepository のテスト"""

    def test_upsert_merges_by_endpoint_key(self):
        mock_db = MagicMock()
        repo = FirestorePushSubscriptionRepository(mock_db)
        sub = PushSubscription(endpoint="https://push.example.com/abc", keys={"auth": "a", "p256dh": "p"})

        key = repo.upsert("u1", sub)

        assert key == endpoint_key(sub.endpoint)
        ref = mock_db.collection.return_value.document.return_value
        data, kwargs = ref.set.call_args[0][0], ref.set.call_args[1]
        assert data["subscriptions"][key]["endpoint"] == sub.endpoint
        assert kwargs == {"merge": True}

    def test_list_skips_entries_without_endpoint(self):
        mock_db = MagicMock()
        mock_db.collection.return_value.document.return_value.get.return_value = _make_snap(
            "u1",
            {"subscriptions": {"k1": {"endpoint": "https://e/1", "keys": {}}, "k2": {"keys": {}}}},
        )
        subs = FirestorePushSubscriptionRepository(mock_db).list("u1")
        assert [s.endpoint for s in subs] == ["https://e/1"]

    def test_remove_deletes_single_key(self):
        mock_db = MagicMock()
        ref = mock_db.collection.return_value.document.return_value
        ref.get.return_value = _make_snap("u1", {})
        FirestorePushSubscriptionRepository(mock_db).remove("u1", "https://e/1")
        key = endpoint_key("https://e/1")
        ref.update.assert_called_once_with({f"subscriptions.{key}": firestore.DELETE_FIELD})
