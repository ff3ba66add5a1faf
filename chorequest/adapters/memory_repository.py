"""In-Memory Repository Adapter

LOCAL_MODE とユニットテスト用のインメモリ実装。
全リポジトリは 1 つの MemoryStore を共有し、単一のロックで書き込みを直列化する。
これにより transition() の CAS とポイント加算が Firestore トランザクションと
同じ原子性を持つ。
"""

from __future__ import annotations

import dataclasses
import datetime
import threading
import uuid

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


def _now() -> datetime.datetime:
    return datetime.datetime.now(datetime.UTC)


class MemoryStore:
    """houses / profiles / tasks / push_subscriptions を保持するプロセス内ストア"""

    def __init__(self) -> None:
        self.lock = threading.RLock()
        self.houses: dict[str, House] = {}
        self.profiles: dict[str, Member] = {}
        self.tasks: dict[str, Task] = {}
        self.push_subscriptions: dict[str, dict[str, PushSubscription]] = {}


class MemoryHouseRepository(HouseRepository):
    def __init__(self, store: MemoryStore) -> None:
        self._store = store

    def create(self, name: str, owner_id: str) -> House:
        house = House(id=str(uuid.uuid4()), name=name, owner_id=owner_id, created_at=_now())
        with self._store.lock:
            self._store.houses[house.id] = house
        return house

    def get(self, house_id: str) -> House | None:
        return self._store.houses.get(house_id)

    def rename(self, house_id: str, name: str) -> House:
        with self._store.lock:
            house = self._store.houses.get(house_id)
            if house is None:
                raise NotFoundError(f"House not found: {house_id}")
            house = dataclasses.replace(house, name=name)
            self._store.houses[house_id] = house
        return house


class MemoryMemberRepository(MemberRepository):
    def __init__(self, store: MemoryStore) -> None:
        self._store = store

    def get(self, member_id: str) -> Member | None:
        return self._store.profiles.get(member_id)

    def create(self, member: Member) -> Member:
        with self._store.lock:
            return self._store.profiles.setdefault(member.id, member)

    def assign(self, member_id: str, house_id: str, role: Role) -> Member:
        with self._store.lock:
            member = self._store.profiles.get(member_id)
            if member is None:
                raise NotFoundError(f"Member not found: {member_id}")
            member = dataclasses.replace(member, house_id=house_id, role=role)
            self._store.profiles[member_id] = member
        return member

    def list_by_house(self, house_id: str) -> list[Member]:
        with self._store.lock:
            return [m for m in self._store.profiles.values() if m.house_id == house_id]


class MemoryTaskRepository(TaskRepository):
    def __init__(self, store: MemoryStore) -> None:
        self._store = store

    def create(self, task: Task) -> Task:
        now = _now()
        task = dataclasses.replace(
            task, id=task.id or str(uuid.uuid4()), created_at=now, updated_at=now
        )
        with self._store.lock:
            self._store.tasks[task.id] = task
        return task

    def get(self, task_id: str) -> Task | None:
        return self._store.tasks.get(task_id)

    def list_by_house(
        self,
        house_id: str,
        status: TaskStatus | None = None,
        assigned_to: str | None = None,
    ) -> list[Task]:
        with self._store.lock:
            tasks = [
                t
                for t in self._store.tasks.values()
                if t.house_id == house_id
                and (status is None or t.status is status)
                and (assigned_to is None or t.assigned_to == assigned_to)
            ]
        return sorted(tasks, key=deadline_sort_key)

    def transition(
        self,
        task_id: str,
        expected: TaskStatus,
        updates: dict,
        award_points: bool = False,
    ) -> Task:
        with self._store.lock:
            task = self._store.tasks.get(task_id)
            if task is None:
                raise NotFoundError(f"Task not found: {task_id}")
            if task.status is not expected:
                raise ConflictError(
                    f"Task {task_id} is '{task.status.value}', expected '{expected.value}'"
                )
            task = dataclasses.replace(task, **updates, updated_at=_now())
            self._store.tasks[task_id] = task

            if award_points and task.assigned_to:
                member = self._store.profiles.get(task.assigned_to)
                if member is not None:
                    self._store.profiles[member.id] = dataclasses.replace(
                        member, points=member.points + task.reward_points
                    )
        return task

    def set_deadline(self, task_id: str, deadline: datetime.datetime) -> Task:
        with self._store.lock:
            task = self._store.tasks.get(task_id)
            if task is None:
                raise NotFoundError(f"Task not found: {task_id}")
            task = dataclasses.replace(task, deadline=deadline, updated_at=_now())
            self._store.tasks[task_id] = task
        return task

    def delete(self, task_id: str) -> None:
        with self._store.lock:
            if self._store.tasks.pop(task_id, None) is None:
                raise NotFoundError(f"Task not found: {task_id}")

    def list_overdue(self, now: datetime.datetime) -> list[Task]:
        with self._store.lock:
            return [
                t
                for t in self._store.tasks.values()
                if t.status is TaskStatus.TODO and t.deadline is not None and t.deadline < now
            ]


class MemoryPushSubscriptionRepository(PushSubscriptionRepository):
    def __init__(self, store: MemoryStore) -> None:
        self._store = store

    def upsert(self, user_id: str, subscription: PushSubscription) -> str:
        key = endpoint_key(subscription.endpoint)
        with self._store.lock:
            self._store.push_subscriptions.setdefault(user_id, {})[key] = subscription
        return key

    def remove(self, user_id: str, endpoint: str) -> None:
        with self._store.lock:
            self._store.push_subscriptions.get(user_id, {}).pop(endpoint_key(endpoint), None)

    def list(self, user_id: str) -> list[PushSubscription]:
        with self._store.lock:
            return [*self._store.push_subscriptions.get(user_id, {}).values()]
