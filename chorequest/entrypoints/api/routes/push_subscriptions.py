"""Push サブスクリプション管理 API ルート

POST   /api/push-subscriptions             → Web Push サブスクリプションを登録
POST   /api/push-subscriptions/unsubscribe → Web Push サブスクリプションを削除

保存形式（端末 Map 方式）:
  push_subscriptions/{member_id}: {
    subscriptions: { "<sha256_hex[:16]>": { endpoint, keys }, ... }
  }
"""

from __future__ import annotations

import logging

from fastapi import APIRouter, Depends, status
from pydantic import BaseModel

from chorequest.domain.models import Member, PushSubscription
from chorequest.domain.ports import PushSubscriptionRepository
from chorequest.entrypoints.api.deps import (
    get_current_member,
    get_push_subscription_repo,
)

logger = logging.getLogger(__name__)
router = APIRouter(prefix="/push-subscriptions", tags=["push-subscriptions"])


class PushSubscriptionKeys(BaseModel):
    auth: str
    p256dh: str


class PushSubscriptionRequest(BaseModel):
    endpoint: str
    keys: PushSubscriptionKeys


class UnsubscribeRequest(BaseModel):
    endpoint: str


@router.post("", status_code=status.HTTP_204_NO_CONTENT)
def register_push_subscription(
    body: PushSubscriptionRequest,
    member: Member = Depends(get_current_member),
    repo: PushSubscriptionRepository = Depends(get_push_subscription_repo),
) -> None:
    """ブラウザの Push サブスクリプションを保存する（同じ endpoint は上書き）"""
    key = repo.upsert(
        member.id,
        PushSubscription(endpoint=body.endpoint, keys=body.keys.model_dump()),
    )
    logger.info("Push subscription registered: member_id=%s, key=%s", member.id, key)


@router.post("/unsubscribe", status_code=status.HTTP_204_NO_CONTENT)
def unregister_push_subscription(
    body: UnsubscribeRequest,
    member: Member = Depends(get_current_member),
    repo: PushSubscriptionRepository = Depends(get_push_subscription_repo),
) -> None:
    """該当端末のサブスクリプションのみ削除する"""
    repo.remove(member.id, body.endpoint)
    logger.info("Push subscription removed: member_id=%s", member.id)
