"""タスク API ルート

GET    /api/tasks?status=&assigned_to=  → 200 [TaskResponse...]
GET    /api/tasks/stats?assigned_to=    → 200 { todo, pending_approval, done, failed }
POST   /api/tasks                       → 201 TaskResponse              （parent のみ）
GET    /api/tasks/{id}                  → 200 TaskResponse
POST   /api/tasks/{id}/submit           → 200 TaskResponse  multipart（photo は任意）
POST   /api/tasks/{id}/approve          → 200 TaskResponse              （parent のみ）
POST   /api/tasks/{id}/reject           → 200 TaskResponse              （parent のみ）
PATCH  /api/tasks/{id}/deadline         → 200 TaskResponse              （parent のみ）
DELETE /api/tasks/{id}                  → 204                           （parent のみ）
"""

from __future__ import annotations

from fastapi import APIRouter, Depends, File, UploadFile, status
from pydantic import BaseModel, Field

from chorequest.domain.models import ActorContext, NewTask, ProofPhoto, Task, TaskStatus
from chorequest.entrypoints.api.deps import get_actor, get_task_engine
from chorequest.services.task_engine import TaskEngine

router = APIRouter(prefix="/tasks", tags=["tasks"])


class TaskResponse(BaseModel):
    id: str
    house_id: str
    title: str
    description: str
    punishment_desc: str
    reward_points: int
    deadline: str | None
    status: str
    requires_proof: bool
    notify_all_parents: bool
    assigned_to: str | None
    proof_url: str | None
    rejection_reason: str | None
    created_by: str
    created_at: str | None
    updated_at: str | None


class TaskCreateRequest(BaseModel):
    title: str
    reward_points: int
    description: str = ""
    punishment_desc: str = ""
    deadline: str | None = None
    requires_proof: bool = False
    notify_all_parents: bool = False
    assigned_to: str | None = None


class RejectRequest(BaseModel):
    reason: str | None = Field(default=None, max_length=500)


class DeadlineRequest(BaseModel):
    deadline: str


class TaskStatsResponse(BaseModel):
    todo: int
    pending_approval: int
    done: int
    failed: int


def _iso(value) -> str | None:
    return value.isoformat() if value else None


def _to_response(task: Task) -> TaskResponse:
    return TaskResponse(
        id=task.id,
        house_id=task.house_id,
        title=task.title,
        description=task.description,
        punishment_desc=task.punishment_desc,
        reward_points=task.reward_points,
        deadline=_iso(task.deadline),
        status=task.status.value,
        requires_proof=task.requires_proof,
        notify_all_parents=task.notify_all_parents,
        assigned_to=task.assigned_to,
        proof_url=task.proof_url,
        rejection_reason=task.rejection_reason,
        created_by=task.created_by,
        created_at=_iso(task.created_at),
        updated_at=_iso(task.updated_at),
    )


@router.get("", response_model=list[TaskResponse])
def list_tasks(
    status: TaskStatus | None = None,
    assigned_to: str | None = None,
    actor: ActorContext = Depends(get_actor),
    engine: TaskEngine = Depends(get_task_engine),
) -> list[TaskResponse]:
    """
    ハウスのタスク一覧を期限の昇順で返す。

    クエリパラメータ:
        status: todo / pending_approval / done / failed でフィルター
        assigned_to: 担当メンバーでフィルター（子供ごとの表示）
    """
    tasks = engine.list_tasks(actor, status=status, assigned_to=assigned_to)
    return [_to_response(t) for t in tasks]


@router.get("/stats", response_model=TaskStatsResponse)
def task_stats(
    assigned_to: str | None = None,
    actor: ActorContext = Depends(get_actor),
    engine: TaskEngine = Depends(get_task_engine),
) -> TaskStatsResponse:
    """ステータス別のタスク件数"""
    stats = engine.task_stats(actor, assigned_to=assigned_to)
    return TaskStatsResponse(
        todo=stats.todo,
        pending_approval=stats.pending_approval,
        done=stats.done,
        failed=stats.failed,
    )


@router.post("", status_code=status.HTTP_201_CREATED, response_model=TaskResponse)
def create_task(
    body: TaskCreateRequest,
    actor: ActorContext = Depends(get_actor),
    engine: TaskEngine = Depends(get_task_engine),
) -> TaskResponse:
    """タスクを作成する（status は常に todo）"""
    task = engine.create_task(actor, NewTask(**body.model_dump()))
    return _to_response(task)


@router.get("/{task_id}", response_model=TaskResponse)
def get_task(
    task_id: str,
    actor: ActorContext = Depends(get_actor),
    engine: TaskEngine = Depends(get_task_engine),
) -> TaskResponse:
    return _to_response(engine.get_task(actor, task_id))


@router.post("/{task_id}/submit", response_model=TaskResponse)
def submit_completion(
    task_id: str,
    photo: UploadFile | None = File(None),
    actor: ActorContext = Depends(get_actor),
    engine: TaskEngine = Depends(get_task_engine),
) -> TaskResponse:
    """
    完了を報告する。未割り当てのタスクは報告者が受注する。

    別メンバーが先に報告していた場合は 409 TASK_ALREADY_CLAIMED を返す。
    """
    proof = None
    if photo is not None and photo.filename:
        proof = ProofPhoto(
            content=photo.file.read(),
            content_type=photo.content_type or "",
            filename=photo.filename,
        )
    task = engine.submit_completion(actor, task_id, proof)
    return _to_response(task)


@router.post("/{task_id}/approve", response_model=TaskResponse)
def approve_task(
    task_id: str,
    actor: ActorContext = Depends(get_actor),
    engine: TaskEngine = Depends(get_task_engine),
) -> TaskResponse:
    """承認して担当者にポイントを付与する"""
    return _to_response(engine.approve_task(actor, task_id))


@router.post("/{task_id}/reject", response_model=TaskResponse)
def reject_task(
    task_id: str,
    body: RejectRequest | None = None,
    actor: ActorContext = Depends(get_actor),
    engine: TaskEngine = Depends(get_task_engine),
) -> TaskResponse:
    """差し戻す（status は todo に戻り、担当者は維持される）"""
    reason = body.reason if body else None
    return _to_response(engine.reject_task(actor, task_id, reason))


@router.patch("/{task_id}/deadline", response_model=TaskResponse)
def extend_deadline(
    task_id: str,
    body: DeadlineRequest,
    actor: ActorContext = Depends(get_actor),
    engine: TaskEngine = Depends(get_task_engine),
) -> TaskResponse:
    return _to_response(engine.extend_deadline(actor, task_id, body.deadline))


@router.delete("/{task_id}", status_code=status.HTTP_204_NO_CONTENT)
def delete_task(
    task_id: str,
    actor: ActorContext = Depends(get_actor),
    engine: TaskEngine = Depends(get_task_engine),
) -> None:
    engine.delete_task(actor, task_id)
