"""共通テストフィクスチャ

インメモリストア上にハウス（parent 1 人・child 2 人）を用意し、
写真ストレージと通知はモックに差し替える。

モックの作成:
- MagicMock(spec=ABC) で ABC のメソッドシグネチャを保持
"""

import datetime
from unittest.mock import MagicMock

import pytest
from chorequest.adapters.memory_repository import (
    MemoryHouseRepository,
    MemoryMemberRepository,
    MemoryPushSubscriptionRepository,
    MemoryStore,
    MemoryTaskRepository,
)
from chorequest.domain.models import ActorContext, Member, Role
from chorequest.domain.ports import NotificationPublisher, PhotoStorage
from chorequest.services.house_service import HouseService
from chorequest.services.task_engine import TaskEngine

FIXED_NOW = datetime.datetime(2026, 10, 19, 12, 0, tzinfo=datetime.UTC)

PARENT_ID = "parent-uid"
CHILD1_ID = "child1-uid"
CHILD2_ID = "child2-uid"

# ========== ストア・リポジトリ ==========


@pytest.fixture
def store() -> MemoryStore:
    return MemoryStore()


@pytest.fixture
def house_repo(store) -> MemoryHouseRepository:
    return MemoryHouseRepository(store)


@pytest.fixture
def member_repo(store) -> MemoryMemberRepository:
    return MemoryMemberRepository(store)


@pytest.fixture
def task_repo(store) -> MemoryTaskRepository:
    return MemoryTaskRepository(store)


@pytest.fixture
def push_repo(store) -> MemoryPushSubscriptionRepository:
    return MemoryPushSubscriptionRepository(store)


# ========== モック ==========


@pytest.fixture
def mock_photos():
    """PhotoStorage のモック（アップロード先パスから URL を作る）"""
    photos = MagicMock(spec=PhotoStorage)
    photos.upload.side_effect = lambda path, content, content_type: (
        f"https://storage.example.com/{path}"
    )
    return photos


@pytest.fixture
def mock_notifier():
    """NotificationPublisher のモック"""
    return MagicMock(spec=NotificationPublisher)


# ========== サービス ==========


@pytest.fixture
def house_service(house_repo, member_repo) -> HouseService:
    return HouseService(house_repo, member_repo, frontend_base_url="https://chores.example.com")


@pytest.fixture
def engine(task_repo, member_repo, mock_photos, mock_notifier) -> TaskEngine:
    return TaskEngine(
        task_repo,
        member_repo,
        mock_photos,
        mock_notifier,
        clock=lambda: FIXED_NOW,
    )


# ========== サンプルハウス ==========


@pytest.fixture
def house(house_service, member_repo):
    """parent 1 人（Máma）と child 2 人（Tomáš, Anička）のハウス"""
    house_service.ensure_member(PARENT_ID, full_name="Máma")
    house = house_service.create_house("Novákovi", PARENT_ID)
    for uid, name in ((CHILD1_ID, "Tomáš"), (CHILD2_ID, "Anička")):
        member_repo.create(Member(id=uid, full_name=name))
        member_repo.assign(uid, house.id, Role.CHILD)
    return house


@pytest.fixture
def parent(house) -> ActorContext:
    return ActorContext(member_id=PARENT_ID, house_id=house.id, role=Role.PARENT)


@pytest.fixture
def child1(house) -> ActorContext:
    return ActorContext(member_id=CHILD1_ID, house_id=house.id, role=Role.CHILD)


@pytest.fixture
def child2(house) -> ActorContext:
    return ActorContext(member_id=CHILD2_ID, house_id=house.id, role=Role.CHILD)
