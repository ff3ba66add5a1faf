"""スケジューラー ワーカー エントリーポイント

Cloud Scheduler から HTTP POST を受け取り、定期処理を実行する。

  POST /worker/expire-overdue
    期限切れの todo タスクを failed にし、担当者へ通知する。
    ペイロードは不要（任意で {"now": "<ISO-8601>"} を指定可能）。
"""

from __future__ import annotations

import logging

from fastapi import APIRouter, Depends, HTTPException, Request, status

from chorequest.domain.errors import ValidationError
from chorequest.entrypoints.api.deps import get_task_engine
from chorequest.entrypoints.api.worker_auth import SchedulerCaller, verify_worker_token
from chorequest.services.task_engine import TaskEngine, parse_deadline

logger = logging.getLogger(__name__)

router = APIRouter(dependencies=[Depends(verify_worker_token)])


@router.post("/expire-overdue", status_code=status.HTTP_200_OK)
async def expire_overdue(
    request: Request,
    caller: SchedulerCaller = Depends(verify_worker_token),
    engine: TaskEngine = Depends(get_task_engine),
) -> dict:
    """
    期限切れタスクの一括失効。

    呼び出し元の検証は verify_worker_token で実施済み。
    """
    now = None
    body = await request.body()
    if body:
        try:
            payload = await request.json()
        except ValueError as e:
            raise HTTPException(status_code=400, detail="Invalid JSON payload") from e
        if isinstance(payload, dict) and payload.get("now"):
            try:
                now = parse_deadline(payload["now"])
            except ValidationError as e:
                raise HTTPException(status_code=400, detail=str(e)) from e

    expired = engine.expire_overdue(now)
    logger.info("expire-overdue done: expired=%d, caller=%s", len(expired), caller.email)
    return {"status": "ok", "expired": len(expired), "task_ids": [t.id for t in expired]}
