"""Web Push Notifier Adapter

pywebpush + VAPID を使った NotificationPublisher 実装。
通知イベントの user_id に紐づく全端末へプッシュ通知を送信する。

VAPID (Voluntary Application Server Identification):
- 公開鍵と秘密鍵のペアでアプリサーバーを認証する仕組み
- ブラウザのプッシュサービス（FCM 等）がサーバーを識別できる
"""

from __future__ import annotations

import json
import logging
from dataclasses import dataclass

from pywebpush import WebPushException, webpush

from chorequest.domain.models import NotificationEvent, PushSubscription
from chorequest.domain.ports import NotificationPublisher, PushSubscriptionRepository

logger = logging.getLogger(__name__)


@dataclass
class VapidConfig:
    """VAPID 認証の設定"""

    private_key: str  # VAPID 秘密鍵（PEM 形式）
    public_key: str  # VAPID 公開鍵（Base64url エンコード）
    claims_email: str  # VAPID クレームのメールアドレス


class WebPushNotifier(NotificationPublisher):
    """
    pywebpush を使った Web Push 通知実装。

    送信は fire-and-forget。410 Gone（失効）のサブスクリプションは削除し、
    その他の失敗はログに残して次の端末へ進む。
    """

    def __init__(
        self, vapid: VapidConfig, subscriptions: PushSubscriptionRepository
    ) -> None:
        self._vapid = vapid
        self._subscriptions = subscriptions

    def publish(self, event: NotificationEvent) -> None:
        subs = self._subscriptions.list(event.user_id)
        if not subs:
            logger.debug("No push subscriptions: user_id=%s", event.user_id)
            return

        payload = json.dumps(event.payload, ensure_ascii=False)
        for sub in subs:
            try:
                self.send(sub, payload)
            except WebPushException as e:
                if _is_gone_error(e):
                    logger.info(
                        "Push subscription expired, removing: user_id=%s", event.user_id
                    )
                    self._subscriptions.remove(event.user_id, sub.endpoint)
                else:
                    logger.warning(
                        "Web Push failed: user_id=%s, endpoint=%s..., error=%s",
                        event.user_id,
                        sub.endpoint[:40],
                        e,
                    )

    def send(self, subscription: PushSubscription, payload: str) -> None:
        """
        Web Push 通知を 1 端末へ送信。

        Raises:
            WebPushException: 送信に失敗した場合
        """
        webpush(
            subscription_info={
                "endpoint": subscription.endpoint,
                "keys": subscription.keys,
            },
            data=payload,
            vapid_private_key=self._vapid.private_key,
            vapid_claims={"sub": f"mailto:{self._vapid.claims_email}"},
            content_encoding="aes128gcm",
            ttl=86400,  # 24時間後に未配信の push を破棄
        )
        logger.info("Web Push sent: endpoint=%s...", subscription.endpoint[:40])


class NullNotifier(NotificationPublisher):
    """NotificationPublisher の Null Object（VAPID 未設定時）"""

    def publish(self, event: NotificationEvent) -> None:
        logger.debug(
            "NullNotifier: notification skipped (VAPID not configured) user_id=%s",
            event.user_id,
        )


def _is_gone_error(e: WebPushException) -> bool:
    """WebPushException の HTTP 410 Gone / 404 を判定する"""
    response = getattr(e, "response", None)
    return response is not None and response.status_code in (404, 410)
