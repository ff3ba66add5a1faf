"""Firestore Repository Adapter

HouseRepository / MemberRepository / TaskRepository / PushSubscriptionRepository の
Firestore 実装。

Firestore コレクション構造:
  houses/{houseId}                    ← ハウス
  profiles/{uid}                      ← メンバープロファイル（points を含む）
  tasks/{taskId}                      ← タスク（house_id フィールドでスコープ）
  push_subscriptions/{uid}            ← { subscriptions: { <sha256[:16]>: {endpoint, keys} } }

status の遷移はトランザクション内で再読込して expected と比較する（CAS）。
ポイント加算は firestore.Increment によるサーバー側加算で、遷移と同じ
トランザクションでコミットする。
"""

from __future__ import annotations

import datetime
import logging
import uuid
from enum import Enum
from typing import Any

from google.api_core import exceptions as gapi_exceptions
from google.cloud import firestore

from chorequest.domain.errors import ConflictError, NotFoundError
from chorequest.domain.models import (
    House,
    Member,
    PushSubscription,
    Role,
    Task,
    TaskStatus,
    deadline_sort_key,
    endpoint_key,
)
from chorequest.domain.ports import (
    HouseRepository,
    MemberRepository,
    PushSubscriptionRepository,
    TaskRepository,
)

logger = logging.getLogger(__name__)

_HOUSES = "houses"
_PROFILES = "profiles"
_TASKS = "tasks"
_PUSH_SUBSCRIPTIONS = "push_subscriptions"


class FirestoreHouseRepository(HouseRepository):
    """houses コレクションを管理する"""

    def __init__(self, db: firestore.Client) -> None:
        self._db = db

    def create(self, name: str, owner_id: str) -> House:
        house_id = str(uuid.uuid4())
        self._db.collection(_HOUSES).document(house_id).set(
            {
                "name": name,
                "owner_id": owner_id,
                "created_at": firestore.SERVER_TIMESTAMP,
            }
        )
        logger.info("Created house: house_id=%s, owner_id=%s", house_id, owner_id)
        return House(id=house_id, name=name, owner_id=owner_id)

    def get(self, house_id: str) -> House | None:
        snap = self._db.collection(_HOUSES).document(house_id).get()
        if not snap.exists:
            return None
        d = snap.to_dict() or {}
        return House(
            id=snap.id,
            name=d.get("name") or "",
            owner_id=d.get("owner_id") or "",
            created_at=d.get("created_at"),
        )

    def rename(self, house_id: str, name: str) -> House:
        ref = self._db.collection(_HOUSES).document(house_id)
        try:
            ref.update({"name": name})
        except gapi_exceptions.NotFound as e:
            raise NotFoundError(f"House not found: {house_id}") from e
        logger.info("Renamed house: house_id=%s", house_id)
        house = self.get(house_id)
        if house is None:
            raise NotFoundError(f"House not found: {house_id}")
        return house


class FirestoreMemberRepository(MemberRepository):
    """profiles コレクションを管理する"""

    def __init__(self, db: firestore.Client) -> None:
        self._db = db

    def get(self, member_id: str) -> Member | None:
        snap = self._db.collection(_PROFILES).document(member_id).get()
        if not snap.exists:
            return None
        return self._dict_to_member(snap.id, snap.to_dict() or {})

    def create(self, member: Member) -> Member:
        ref = self._db.collection(_PROFILES).document(member.id)
        try:
            ref.create(
                {
                    "full_name": member.full_name,
                    "email": member.email,
                    "role": member.role.value,
                    "house_id": member.house_id,
                    "points": member.points,
                    "created_at": firestore.SERVER_TIMESTAMP,
                }
            )
        except gapi_exceptions.AlreadyExists:
            # 同時初回アクセスで先に作られた場合は既存を返す
            existing = self.get(member.id)
            if existing is not None:
                return existing
            raise
        logger.info("Created profile: member_id=%s", member.id)
        return member

    def assign(self, member_id: str, house_id: str, role: Role) -> Member:
        ref = self._db.collection(_PROFILES).document(member_id)
        try:
            ref.update({"house_id": house_id, "role": role.value})
        except gapi_exceptions.NotFound as e:
            raise NotFoundError(f"Member not found: {member_id}") from e
        logger.info(
            "Assigned member: member_id=%s, house_id=%s, role=%s",
            member_id,
            house_id,
            role.value,
        )
        member = self.get(member_id)
        if member is None:
            raise NotFoundError(f"Member not found: {member_id}")
        return member

    def list_by_house(self, house_id: str) -> list[Member]:
        snaps = (
            self._db.collection(_PROFILES).where("house_id", "==", house_id).stream()
        )
        return [self._dict_to_member(snap.id, snap.to_dict() or {}) for snap in snaps]

    @staticmethod
    def _dict_to_member(member_id: str, data: dict) -> Member:
        return Member(
            id=member_id,
            full_name=data.get("full_name") or "",
            email=data.get("email") or "",
            role=Role(data.get("role") or Role.CHILD.value),
            house_id=data.get("house_id") or None,
            points=int(data.get("points") or 0),
        )


@firestore.transactional
def _apply_transition(
    transaction: firestore.Transaction,
    db: firestore.Client,
    ref: firestore.DocumentReference,
    expected: TaskStatus,
    updates: dict[str, Any],
    award_points: bool,
) -> dict[str, Any]:
    """
    トランザクション内で status を再読込し、expected と一致する場合のみ書き込む。

    競合時は Firestore がトランザクションを再試行し、再読込した status が
    変わっていれば ConflictError でロールバックされる。
    """
    snap = ref.get(transaction=transaction)
    if not snap.exists:
        raise NotFoundError(f"Task not found: {ref.id}")
    data = snap.to_dict() or {}
    current = data.get("status")
    if current != expected.value:
        raise ConflictError(
            f"Task {ref.id} is '{current}', expected '{expected.value}'"
        )

    transaction.update(ref, {**updates, "updated_at": firestore.SERVER_TIMESTAMP})

    if award_points:
        assignee = updates.get("assigned_to", data.get("assigned_to"))
        if assignee:
            transaction.update(
                db.collection(_PROFILES).document(assignee),
                {"points": firestore.Increment(int(data.get("reward_points") or 0))},
            )
    return {**data, **updates}


class FirestoreTaskRepository(TaskRepository):
    """tasks コレクションを管理する"""

    def __init__(self, db: firestore.Client) -> None:
        self._db = db

    def create(self, task: Task) -> Task:
        task_id = task.id or str(uuid.uuid4())
        self._db.collection(_TASKS).document(task_id).set(
            {
                **self._task_to_dict(task),
                "created_at": firestore.SERVER_TIMESTAMP,
                "updated_at": firestore.SERVER_TIMESTAMP,
            }
        )
        logger.info("Created task: task_id=%s, house_id=%s", task_id, task.house_id)
        return self._dict_to_task(task_id, self._task_to_dict(task))

    def get(self, task_id: str) -> Task | None:
        snap = self._db.collection(_TASKS).document(task_id).get()
        if not snap.exists:
            return None
        return self._dict_to_task(snap.id, snap.to_dict() or {})

    def list_by_house(
        self,
        house_id: str,
        status: TaskStatus | None = None,
        assigned_to: str | None = None,
    ) -> list[Task]:
        query = self._db.collection(_TASKS).where("house_id", "==", house_id)
        if status is not None:
            query = query.where("status", "==", status.value)
        if assigned_to is not None:
            query = query.where("assigned_to", "==", assigned_to)
        # 複合インデックスを避けるため並べ替えはアプリ側で行う
        tasks = [self._dict_to_task(snap.id, snap.to_dict() or {}) for snap in query.stream()]
        return sorted(tasks, key=deadline_sort_key)

    def transition(
        self,
        task_id: str,
        expected: TaskStatus,
        updates: dict,
        award_points: bool = False,
    ) -> Task:
        ref = self._db.collection(_TASKS).document(task_id)
        data = _apply_transition(
            self._db.transaction(),
            self._db,
            ref,
            expected,
            _encode(updates),
            award_points,
        )
        logger.info(
            "Task transitioned: task_id=%s, %s -> %s",
            task_id,
            expected.value,
            data.get("status"),
        )
        return self._dict_to_task(task_id, data)

    def set_deadline(self, task_id: str, deadline: datetime.datetime) -> Task:
        ref = self._db.collection(_TASKS).document(task_id)
        try:
            ref.update({"deadline": deadline, "updated_at": firestore.SERVER_TIMESTAMP})
        except gapi_exceptions.NotFound as e:
            raise NotFoundError(f"Task not found: {task_id}") from e
        task = self.get(task_id)
        if task is None:
            raise NotFoundError(f"Task not found: {task_id}")
        return task

    def delete(self, task_id: str) -> None:
        ref = self._db.collection(_TASKS).document(task_id)
        if not ref.get().exists:
            raise NotFoundError(f"Task not found: {task_id}")
        ref.delete()
        logger.info("Deleted task: task_id=%s", task_id)

    def list_overdue(self, now: datetime.datetime) -> list[Task]:
        query = (
            self._db.collection(_TASKS)
            .where("status", "==", TaskStatus.TODO.value)
            .where("deadline", "<", now)
        )
        return [self._dict_to_task(snap.id, snap.to_dict() or {}) for snap in query.stream()]

    # ── 変換ヘルパー ──────────────────────────────────────────────────────────

    @staticmethod
    def _task_to_dict(task: Task) -> dict:
        return {
            "house_id": task.house_id,
            "title": task.title,
            "description": task.description,
            "reward_points": task.reward_points,
            "punishment_desc": task.punishment_desc,
            "deadline": task.deadline,
            "requires_proof": task.requires_proof,
            "notify_all_parents": task.notify_all_parents,
            "assigned_to": task.assigned_to,
            "created_by": task.created_by,
            "status": task.status.value,
            "proof_url": task.proof_url,
            "rejection_reason": task.rejection_reason,
        }

    @staticmethod
    def _dict_to_task(task_id: str, data: dict) -> Task:
        return Task(
            id=task_id,
            house_id=data.get("house_id") or "",
            title=data.get("title") or "",
            reward_points=int(data.get("reward_points") or 0),
            created_by=data.get("created_by") or "",
            status=TaskStatus(data.get("status") or TaskStatus.TODO.value),
            description=data.get("description") or "",
            punishment_desc=data.get("punishment_desc") or "",
            deadline=data.get("deadline"),
            requires_proof=bool(data.get("requires_proof", False)),
            notify_all_parents=bool(data.get("notify_all_parents", False)),
            assigned_to=data.get("assigned_to") or None,
            proof_url=data.get("proof_url") or None,
            rejection_reason=data.get("rejection_reason") or None,
            created_at=_as_datetime(data.get("created_at")),
            updated_at=_as_datetime(data.get("updated_at")),
        )


class FirestorePushSubscriptionRepository(PushSubscriptionRepository):
    """push_subscriptions/{uid} を管理する（端末 Map 方式）"""

    def __init__(self, db: firestore.Client) -> None:
        self._db = db

    def upsert(self, user_id: str, subscription: PushSubscription) -> str:
        key = endpoint_key(subscription.endpoint)
        self._db.collection(_PUSH_SUBSCRIPTIONS).document(user_id).set(
            {
                "subscriptions": {
                    key: {"endpoint": subscription.endpoint, "keys": subscription.keys}
                }
            },
            merge=True,
        )
        logger.info("Push subscription saved: user_id=%s, key=%s", user_id, key)
        return key

    def remove(self, user_id: str, endpoint: str) -> None:
        ref = self._db.collection(_PUSH_SUBSCRIPTIONS).document(user_id)
        if not ref.get().exists:
            return
        key = endpoint_key(endpoint)
        ref.update({f"subscriptions.{key}": firestore.DELETE_FIELD})
        logger.info("Push subscription removed: user_id=%s, key=%s", user_id, key)

    def list(self, user_id: str) -> list[PushSubscription]:
        snap = self._db.collection(_PUSH_SUBSCRIPTIONS).document(user_id).get()
        if not snap.exists:
            return []
        subscriptions = (snap.to_dict() or {}).get("subscriptions") or {}
        return [
            PushSubscription(endpoint=d["endpoint"], keys=d.get("keys") or {})
            for d in subscriptions.values()
            if d.get("endpoint")
        ]


def _encode(updates: dict) -> dict:
    """Enum を Firestore に保存できる値へ変換する"""
    return {k: v.value if isinstance(v, Enum) else v for k, v in updates.items()}


def _as_datetime(value: Any) -> datetime.datetime | None:
    # SERVER_TIMESTAMP の Sentinel は書き込み直後の戻り値に残ることがある
    return value if isinstance(value, datetime.datetime) else None
