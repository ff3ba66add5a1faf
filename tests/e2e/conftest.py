"""E2E テスト用フィクスチャ

Firestore Emulator に接続し、実際の Repository を使ってテストする。
Firebase Auth は dependency_overrides でバイパスする。

前提: FIRESTORE_EMULATOR_HOST 環境変数が設定されていること
  例: FIRESTORE_EMULATOR_HOST=localhost:8080 pytest tests/e2e/ -m e2e -v
"""

from __future__ import annotations

import os
from unittest.mock import MagicMock

import pytest
from chorequest.adapters.firestore_repository import (
    FirestoreHouseRepository,
    FirestoreMemberRepository,
    FirestorePushSubscriptionRepository,
    FirestoreTaskRepository,
)
from chorequest.adapters.webpush_notifier import NullNotifier
from chorequest.domain.ports import PhotoStorage
from chorequest.entrypoints.api import deps
from chorequest.entrypoints.api.app import app
from chorequest.entrypoints.api.deps import AuthInfo
from chorequest.services.house_service import HouseService
from chorequest.services.task_engine import TaskEngine
from fastapi.testclient import TestClient
from google.cloud import firestore

# テスト用固定値
PARENT_UID = "e2e-parent"
CHILD_UID = "e2e-child"
CHILD2_UID = "e2e-child-2"

_COLLECTIONS = ["houses", "profiles", "tasks", "push_subscriptions"]


@pytest.fixture(scope="session")
def firestore_client():
    """Firestore Emulator に接続するクライアント（セッション共有）。

    FIRESTORE_EMULATOR_HOST が未設定の場合は localhost:8080 をデフォルトとして使用する。
    """
    host = os.environ.get("FIRESTORE_EMULATOR_HOST", "localhost:8080")
    os.environ["FIRESTORE_EMULATOR_HOST"] = host
    return firestore.Client(project="test-project")


@pytest.fixture(autouse=True)
def _cleanup_firestore(request, firestore_client):
    """各テスト後に Emulator のデータをクリーンアップ（e2e マーク付きのみ）"""
    yield
    if not request.node.get_closest_marker("e2e"):
        return
    for collection_name in _COLLECTIONS:
        for doc in firestore_client.collection(collection_name).stream():
            doc.reference.delete()


class Login:
    """ログインユーザーを切り替えるためのホルダー"""

    def __init__(self) -> None:
        self.uid = PARENT_UID

    def auth_info(self) -> AuthInfo:
        return AuthInfo(uid=self.uid, email=f"{self.uid}@example.com", display_name=self.uid)


@pytest.fixture
def login() -> Login:
    return Login()


@pytest.fixture
def mock_photos():
    photos = MagicMock(spec=PhotoStorage)
    photos.upload.side_effect = lambda path, content, content_type: f"https://e2e/{path}"
    return photos


@pytest.fixture
def e2e_client(firestore_client, login, mock_photos):
    """認証バイパス + 実 Firestore の TestClient。

    - get_auth_info: login.uid の AuthInfo を返す（Firebase Auth をバイパス）
    - 写真ストレージ: MagicMock（GCS を使わない）
    - 通知: NullNotifier
    """
    house_service = HouseService(
        FirestoreHouseRepository(firestore_client),
        FirestoreMemberRepository(firestore_client),
        frontend_base_url="https://e2e.example.com",
    )
    engine = TaskEngine(
        FirestoreTaskRepository(firestore_client),
        FirestoreMemberRepository(firestore_client),
        mock_photos,
        NullNotifier(),
    )

    app.dependency_overrides[deps.get_auth_info] = login.auth_info
    app.dependency_overrides[deps.get_house_service] = lambda: house_service
    app.dependency_overrides[deps.get_task_engine] = lambda: engine
    app.dependency_overrides[deps.get_push_subscription_repo] = lambda: (
        FirestorePushSubscriptionRepository(firestore_client)
    )

    with TestClient(app) as c:
        yield c

    app.dependency_overrides.clear()
