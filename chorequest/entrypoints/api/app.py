"""FastAPI アプリケーション

ChoreQuest バックエンド API。
Cloud Run Service として動作し、Firebase Auth で認証する。

エンドポイント一覧:
  POST   /api/houses
  PATCH  /api/houses/me
  GET    /api/houses/me/invite
  GET    /api/houses/{house_id}
  POST   /api/houses/{house_id}/join
  GET    /api/members
  GET    /api/members/me
  GET    /api/tasks
  GET    /api/tasks/stats
  POST   /api/tasks
  GET    /api/tasks/{id}
  POST   /api/tasks/{id}/submit
  POST   /api/tasks/{id}/approve
  POST   /api/tasks/{id}/reject
  PATCH  /api/tasks/{id}/deadline
  DELETE /api/tasks/{id}
  POST   /api/push-subscriptions
  POST   /api/push-subscriptions/unsubscribe
  POST   /worker/expire-overdue   ← OIDC 認証
"""

from __future__ import annotations

import logging
from collections.abc import Callable

from fastapi import FastAPI, Request
from fastapi.middleware.cors import CORSMiddleware
from fastapi.responses import JSONResponse
from starlette.responses import Response

from chorequest.config import cors_origins_from_env
from chorequest.domain.errors import (
    ChoreQuestError,
    ConflictError,
    NotFoundError,
    OrphanedHouseError,
    PermissionDeniedError,
    StorageError,
    ValidationError,
)
from chorequest.entrypoints import worker
from chorequest.entrypoints.api.routes import houses, members, push_subscriptions, tasks
from chorequest.logging_config import setup_logging

# ── ロギング初期化 ───────────────────────────────────────────────────────────
setup_logging()
logger = logging.getLogger(__name__)

# ── FastAPI アプリ ───────────────────────────────────────────────────────────
app = FastAPI(
    title="ChoreQuest API",
    description="家事をクエストにする家族向けアプリ ChoreQuest のバックエンド API",
    version="1.0.0",
)

# ── ドメイン例外 → HTTP ステータス ─────────────────────────────────────────────
# サブクラスを先に並べる（最初に一致したものを使う）
_ERROR_STATUS: list[tuple[type[ChoreQuestError], int]] = [
    (ValidationError, 422),
    (PermissionDeniedError, 403),
    (NotFoundError, 404),
    (ConflictError, 409),
    (StorageError, 502),
    (OrphanedHouseError, 500),
]


def _status_for(exc: ChoreQuestError) -> int:
    for error_type, status_code in _ERROR_STATUS:
        if isinstance(exc, error_type):
            return status_code
    return 500


@app.exception_handler(ChoreQuestError)
async def _handle_domain_error(request: Request, exc: ChoreQuestError) -> JSONResponse:
    status_code = _status_for(exc)
    content: dict = {"detail": str(exc), "code": exc.code}
    if isinstance(exc, ConflictError) and exc.orphaned_proof_url:
        content["orphaned_proof_url"] = exc.orphaned_proof_url
    if isinstance(exc, OrphanedHouseError):
        content["house_id"] = exc.house_id

    if status_code >= 500:
        logger.error(
            "Domain error: %s %s - %s", request.method, request.url.path, exc
        )
    else:
        logger.info(
            "Request rejected: %s %s - %s (%s)",
            request.method,
            request.url.path,
            exc.code,
            exc,
        )
    return JSONResponse(status_code=status_code, content=content)


# ── グローバル例外ミドルウェア ──────────────────────────────────────────────────
# 【登録順の注意】
#   add_middleware は後から登録したものが外側になる。
#   このミドルウェアを CORSMiddleware より先に登録して内側に配置し、
#   500 レスポンスにも CORS ヘッダーが付与されるようにする。
#
# スタック: ServerErrorMiddleware → CORSMiddleware → このMW → ExceptionMiddleware → Routes


@app.middleware("http")
async def _catch_unhandled_exceptions(
    request: Request, call_next: Callable[[Request], Response]
) -> Response:
    try:
        return await call_next(request)
    except Exception as exc:
        logger.error(
            "Unhandled exception: %s %s - %s",
            request.method,
            request.url.path,
            exc,
            exc_info=True,
        )
        return JSONResponse(
            status_code=500,
            content={"detail": "Internal server error"},
        )


# ── CORS（PWA フロントエンドからのリクエストを許可） ─────────────────────────
# CORS_ORIGINS 環境変数でカンマ区切りのオリジンを指定可能
app.add_middleware(
    CORSMiddleware,
    allow_origins=list(cors_origins_from_env()),
    allow_credentials=True,
    allow_methods=["GET", "POST", "PUT", "PATCH", "DELETE", "OPTIONS"],
    allow_headers=["Authorization", "Content-Type"],
)

# ── ルーター登録 ─────────────────────────────────────────────────────────────
_PREFIX = "/api"

app.include_router(houses.router, prefix=_PREFIX)
app.include_router(members.router, prefix=_PREFIX)
app.include_router(tasks.router, prefix=_PREFIX)
app.include_router(push_subscriptions.router, prefix=_PREFIX)

# ── スケジューラー用ワーカールート（/worker/*）──────────────────────────────
# Firebase Auth なし。OIDC トークン検証（verify_worker_token）で保護される。
app.include_router(worker.router, prefix="/worker")


@app.get("/health")
async def health() -> dict:
    """ヘルスチェックエンドポイント（Cloud Run の起動確認用）"""
    return {"status": "ok"}


logger.info("ChoreQuest API started")
