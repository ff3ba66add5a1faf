"""Factory - 依存性注入の組み立て

AppConfig から Adapter と Service を組み立てる。
LOCAL_MODE ではインメモリストアとローカル写真ストレージを使う。
"""

from __future__ import annotations

import logging
from dataclasses import dataclass

from chorequest.adapters.memory_repository import (
    MemoryHouseRepository,
    MemoryMemberRepository,
    MemoryPushSubscriptionRepository,
    MemoryStore,
    MemoryTaskRepository,
)
from chorequest.adapters.webpush_notifier import NullNotifier, VapidConfig, WebPushNotifier
from chorequest.config import AppConfig
from chorequest.domain.ports import (
    HouseRepository,
    MemberRepository,
    NotificationPublisher,
    PhotoStorage,
    PushSubscriptionRepository,
    TaskRepository,
)
from chorequest.services.house_service import HouseService
from chorequest.services.task_engine import TaskEngine

logger = logging.getLogger(__name__)


@dataclass(frozen=True)
class Services:
    """組み立て済みのサービス群"""

    house_service: HouseService
    task_engine: TaskEngine
    push_subscriptions: PushSubscriptionRepository


def create_services(config: AppConfig | None = None) -> Services:
    """
    Services を生成（全依存を組み立て）。

    Args:
        config: アプリケーション設定（None の場合は環境変数から読み込み）

    Raises:
        ValueError: 必須設定が不足している場合
    """
    if config is None:
        config = AppConfig.from_env()

    houses: HouseRepository
    members: MemberRepository
    tasks: TaskRepository
    push_subscriptions: PushSubscriptionRepository
    photos: PhotoStorage

    if config.local_mode:
        from chorequest.adapters.cloud_storage import LocalPhotoStorage

        store = MemoryStore()
        houses = MemoryHouseRepository(store)
        members = MemoryMemberRepository(store)
        tasks = MemoryTaskRepository(store)
        push_subscriptions = MemoryPushSubscriptionRepository(store)
        photos = LocalPhotoStorage()
        logger.info("LOCAL_MODE: using in-memory store")
    else:
        from google.cloud import firestore

        from chorequest.adapters.cloud_storage import GCSPhotoStorage
        from chorequest.adapters.firestore_repository import (
            FirestoreHouseRepository,
            FirestoreMemberRepository,
            FirestorePushSubscriptionRepository,
            FirestoreTaskRepository,
        )

        db = firestore.Client(project=config.project_id or None)
        houses = FirestoreHouseRepository(db)
        members = FirestoreMemberRepository(db)
        tasks = FirestoreTaskRepository(db)
        push_subscriptions = FirestorePushSubscriptionRepository(db)
        photos = GCSPhotoStorage(bucket_name=config.gcs_bucket_name)
        logger.info("Firestore client initialized: project_id=%s", config.project_id)

    notifier: NotificationPublisher
    if config.web_push_enabled:
        notifier = WebPushNotifier(
            VapidConfig(
                private_key=config.vapid_private_key,
                public_key=config.vapid_public_key,
                claims_email=config.vapid_claims_email,
            ),
            push_subscriptions,
        )
        logger.info("Web Push notifier enabled")
    else:
        notifier = NullNotifier()
        logger.warning("VAPID_PRIVATE_KEY not set, notifications will not be sent")

    return Services(
        house_service=HouseService(
            houses, members, frontend_base_url=config.frontend_base_url
        ),
        task_engine=TaskEngine(
            tasks,
            members,
            photos,
            notifier,
            max_proof_bytes=config.max_proof_bytes,
        ),
        push_subscriptions=push_subscriptions,
    )
