"""FastAPI 依存性注入

Firebase Auth JWT 検証とサービスの初期化を担当する。
各ルートは Depends() でこのモジュールの関数を呼び出して
ActorContext とサービスインスタンスを受け取る。
"""

from __future__ import annotations

import logging
import os
from dataclasses import dataclass

import firebase_admin
import firebase_admin.auth as fb_auth
from fastapi import Depends, HTTPException, status
from fastapi.security import HTTPAuthorizationCredentials, HTTPBearer
from firebase_admin import credentials as fb_creds

from chorequest.domain.models import ActorContext, Member
from chorequest.domain.ports import PushSubscriptionRepository
from chorequest.entrypoints.factory import Services, create_services
from chorequest.services.house_service import HouseService
from chorequest.services.task_engine import TaskEngine

logger = logging.getLogger(__name__)

# ── Firebase Admin 初期化（プロセス内で1回のみ） ────────────────────────────────

_firebase_app: firebase_admin.App | None = None


def _get_firebase_app() -> firebase_admin.App:
    global _firebase_app
    if _firebase_app is None:
        try:
            _firebase_app = firebase_admin.get_app()
        except ValueError:
            cred = fb_creds.ApplicationDefault()
            project_id = os.environ.get("PROJECT_ID")
            _firebase_app = firebase_admin.initialize_app(
                cred,
                options={"projectId": project_id} if project_id else {},
            )
            logger.info("Firebase Admin initialized (deps) project=%s", project_id)
    return _firebase_app


# ── 認証 ────────────────────────────────────────────────────────────────────────


@dataclass(frozen=True)
class AuthInfo:
    """Firebase Auth JWT から取得した認証情報"""

    uid: str
    email: str
    display_name: str


_bearer = HTTPBearer()


def get_auth_info(
    creds: HTTPAuthorizationCredentials = Depends(_bearer),
) -> AuthInfo:
    """
    Authorization: Bearer <id_token> ヘッダーを検証して AuthInfo を返す。

    Raises:
        HTTPException(401): トークンが無効な場合
    """
    _get_firebase_app()
    try:
        decoded = fb_auth.verify_id_token(creds.credentials)
    except Exception as e:
        logger.warning("Invalid Firebase ID token: %s", e)
        raise HTTPException(
            status_code=status.HTTP_401_UNAUTHORIZED,
            detail="Invalid or expired Firebase ID token",
        ) from e

    return AuthInfo(
        uid=decoded["uid"],
        email=decoded.get("email", ""),
        display_name=decoded.get("name", ""),
    )


# ── サービス（シングルトン） ──────────────────────────────────────────────────

_services: Services | None = None


def _get_services() -> Services:
    global _services
    if _services is None:
        _services = create_services()
    return _services


def get_house_service() -> HouseService:
    """HouseService を返す依存関数"""
    return _get_services().house_service


def get_task_engine() -> TaskEngine:
    """TaskEngine を返す依存関数"""
    return _get_services().task_engine


def get_push_subscription_repo() -> PushSubscriptionRepository:
    """PushSubscriptionRepository を返す依存関数"""
    return _get_services().push_subscriptions


# ── メンバー・アクターコンテキスト ──────────────────────────────────────────────


def get_current_member(
    auth_info: AuthInfo = Depends(get_auth_info),
    house_service: HouseService = Depends(get_house_service),
) -> Member:
    """
    認証済みユーザーのプロファイルを返す。

    プロファイルが未作成の場合は JWT claims から未所属の child として作成する。
    """
    return house_service.ensure_member(
        auth_info.uid,
        full_name=auth_info.display_name,
        email=auth_info.email,
    )


def get_actor(member: Member = Depends(get_current_member)) -> ActorContext:
    """
    ハウスに所属したメンバーの ActorContext を返す。

    Raises:
        HTTPException(403): ハウス未所属（ハウス作成・参加画面へ誘導する）
    """
    if not member.is_assigned:
        raise HTTPException(
            status_code=status.HTTP_403_FORBIDDEN,
            detail="HOUSE_REQUIRED",
        )
    return ActorContext(member_id=member.id, house_id=member.house_id, role=member.role)
