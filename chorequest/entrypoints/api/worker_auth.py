"""期限切れ処理ワーカーの呼び出し元検証

/worker/expire-overdue は Cloud Scheduler のジョブからのみ呼ばれる。
ジョブに設定したサービスアカウントの Google OIDC トークンを検証し、
それ以外の呼び出しを 401 で拒否する。

- LOCAL_MODE の判定は AppConfig と同じ is_local_mode() を使う
  （"false" / "0" は本番扱いで検証する）
- WORKER_SERVICE_ACCOUNT_EMAIL 未設定時は fail-closed
- WORKER_AUDIENCE を設定した場合のみ aud claim を照合する
"""

from __future__ import annotations

import logging
from dataclasses import dataclass

from fastapi import Depends, HTTPException, status
from fastapi.security import HTTPAuthorizationCredentials, HTTPBearer
from google.auth import exceptions as google_auth_exceptions
from google.auth.transport import requests as google_requests
from google.oauth2 import id_token

from chorequest.config import WorkerAuthConfig

logger = logging.getLogger(__name__)

LOCAL_CALLER = "local"

# auto_error=False: ヘッダーなしでも 403 ではなく 401 を返すため
_bearer_scheme = HTTPBearer(auto_error=False)


@dataclass(frozen=True)
class SchedulerCaller:
    """検証済みの呼び出し元（LOCAL_MODE では LOCAL_CALLER）"""

    email: str


def get_worker_auth_config() -> WorkerAuthConfig:
    """リクエストごとに環境変数から読み直す（テストでは dependency_overrides で差し替え）"""
    return WorkerAuthConfig.from_env()


def _unauthorized(detail: str) -> HTTPException:
    return HTTPException(status_code=status.HTTP_401_UNAUTHORIZED, detail=detail)


def _verify_oidc(token: str, audience: str) -> dict:
    try:
        return id_token.verify_oauth2_token(
            token,
            google_requests.Request(),
            audience=audience or None,
        )
    except (ValueError, google_auth_exceptions.GoogleAuthError) as exc:
        logger.warning("Scheduler OIDC token rejected: %s", exc)
        raise _unauthorized("Invalid OIDC token") from exc


def verify_worker_token(
    credentials: HTTPAuthorizationCredentials | None = Depends(_bearer_scheme),
    config: WorkerAuthConfig = Depends(get_worker_auth_config),
) -> SchedulerCaller:
    """
    スケジューラーのサービスアカウントであることを確認する Depends 関数。

    Raises:
        HTTPException(401): 設定不足・ヘッダーなし・トークン不正・想定外のアカウント
    """
    if config.local_mode:
        return SchedulerCaller(email=LOCAL_CALLER)

    if not config.service_account_email:
        logger.error("WORKER_SERVICE_ACCOUNT_EMAIL is not set; denying expiry sweep")
        raise _unauthorized("Worker authentication is not configured")

    if credentials is None:
        raise _unauthorized("Missing Authorization header")

    claims = _verify_oidc(credentials.credentials, config.audience)

    email = claims.get("email", "")
    if email != config.service_account_email or claims.get("email_verified") is False:
        logger.warning(
            "Expiry sweep called by unexpected account: expected=%s, got=%s",
            config.service_account_email,
            email,
        )
        raise _unauthorized("Unauthorized service account")

    return SchedulerCaller(email=email)
