"""Task Lifecycle Engine

タスク（クエスト）の状態機械と、承認時のポイント加算を担当する。

状態遷移:
  (none)            --CreateTask [parent]-------> todo
  todo              --SubmitCompletion [any]----> pending_approval  (受注・写真)
  pending_approval  --ApproveTask [parent]------> done              (+reward_points)
  pending_approval  --RejectTask [parent]-------> todo              (理由を記録)
  todo              --ExpireOverdue [scheduler]-> failed            (期限切れ)

status の書き込みは全て TaskRepository.transition() の条件付き書き込みで行う。
同時に走った遷移はストアが勝者を決め、敗者は ConflictError になる。
"""

from __future__ import annotations

import datetime
import logging
import uuid
from collections.abc import Callable, Iterable

from chorequest.domain.errors import (
    ConflictError,
    NotFoundError,
    PermissionDeniedError,
    TaskAlreadyClaimedError,
    ValidationError,
)
from chorequest.domain.models import (
    DEFAULT_MAX_PROOF_BYTES,
    ActorContext,
    NewTask,
    NotificationEvent,
    ProofPhoto,
    Task,
    TaskStats,
    TaskStatus,
    can_transition,
)
from chorequest.domain.ports import (
    MemberRepository,
    NotificationPublisher,
    PhotoStorage,
    TaskRepository,
)
from chorequest.services import task_notifications

logger = logging.getLogger(__name__)

_PHOTO_EXTENSIONS = {
    "image/jpeg": ".jpg",
    "image/png": ".png",
    "image/webp": ".webp",
    "image/heic": ".heic",
}


def _utcnow() -> datetime.datetime:
    return datetime.datetime.now(datetime.UTC)


def parse_deadline(value: datetime.datetime | str | None) -> datetime.datetime:
    """
    期限を timezone 付き datetime に変換する。

    ISO-8601 文字列（"2026-10-20T18:00:00Z", "2026-10-20" 等）を受け付ける。
    タイムゾーンなしは UTC とみなす。

    Raises:
        ValidationError: 解釈できない値
    """
    if isinstance(value, datetime.datetime):
        parsed = value
    elif isinstance(value, str) and value.strip():
        try:
            parsed = datetime.datetime.fromisoformat(value.strip())
        except ValueError as e:
            raise ValidationError(f"Invalid deadline: {value!r}") from e
    else:
        raise ValidationError(f"Invalid deadline: {value!r}")

    if parsed.tzinfo is None:
        parsed = parsed.replace(tzinfo=datetime.UTC)
    return parsed


class TaskEngine:
    """
    タスクのライフサイクル操作。

    全操作は ActorContext を明示的に受け取り、ロールと house_id の一致を
    書き込み前に検証する。
    """

    def __init__(
        self,
        tasks: TaskRepository,
        members: MemberRepository,
        photos: PhotoStorage,
        notifier: NotificationPublisher,
        max_proof_bytes: int = DEFAULT_MAX_PROOF_BYTES,
        clock: Callable[[], datetime.datetime] = _utcnow,
    ) -> None:
        self._tasks = tasks
        self._members = members
        self._photos = photos
        self._notifier = notifier
        self._max_proof_bytes = max_proof_bytes
        self._clock = clock

    # ── 参照 ──────────────────────────────────────────────────────────────────

    def get_task(self, actor: ActorContext, task_id: str) -> Task:
        """
        タスクを取得する。別ハウスのタスクは存在しないものとして扱う。

        Raises:
            NotFoundError: 存在しない、または actor のハウスに属さない
        """
        task = self._tasks.get(task_id)
        if task is None or task.house_id != actor.house_id:
            raise NotFoundError(f"Task not found: {task_id}")
        return task

    def list_tasks(
        self,
        actor: ActorContext,
        status: TaskStatus | None = None,
        assigned_to: str | None = None,
    ) -> list[Task]:
        """ハウスのタスク一覧（期限の昇順）"""
        return self._tasks.list_by_house(actor.house_id, status, assigned_to)

    def task_stats(self, actor: ActorContext, assigned_to: str | None = None) -> TaskStats:
        """ステータス別件数（ダッシュボードのタイル用）"""
        counts = {status: 0 for status in TaskStatus}
        for task in self._tasks.list_by_house(actor.house_id, assigned_to=assigned_to):
            counts[task.status] += 1
        return TaskStats(
            todo=counts[TaskStatus.TODO],
            pending_approval=counts[TaskStatus.PENDING_APPROVAL],
            done=counts[TaskStatus.DONE],
            failed=counts[TaskStatus.FAILED],
        )

    # ── 作成 ──────────────────────────────────────────────────────────────────

    def create_task(self, actor: ActorContext, new: NewTask) -> Task:
        """
        タスクを todo で作成する（parent のみ）。

        Raises:
            PermissionDeniedError: actor が parent でない
            ValidationError: タイトルが空、報酬が 0 以下、担当者がハウス外
        """
        self._require_parent(actor, "create tasks")

        title = (new.title or "").strip()
        if not title:
            raise ValidationError("Task title must not be empty")
        if isinstance(new.reward_points, bool) or not isinstance(new.reward_points, int):
            raise ValidationError("reward_points must be an integer")
        if new.reward_points <= 0:
            raise ValidationError("reward_points must be greater than 0")

        assigned_to = new.assigned_to or None
        if assigned_to is not None:
            assignee = self._members.get(assigned_to)
            if assignee is None or assignee.house_id != actor.house_id:
                raise ValidationError(f"Assignee is not a member of this house: {assigned_to}")

        deadline = parse_deadline(new.deadline) if new.deadline is not None else None

        task = self._tasks.create(
            Task(
                id="",
                house_id=actor.house_id,
                title=title,
                reward_points=new.reward_points,
                created_by=actor.member_id,
                status=TaskStatus.TODO,
                description=(new.description or "").strip(),
                punishment_desc=(new.punishment_desc or "").strip(),
                deadline=deadline,
                requires_proof=new.requires_proof,
                notify_all_parents=new.notify_all_parents,
                assigned_to=assigned_to,
            )
        )
        logger.info(
            "Task created: task_id=%s, house_id=%s, by=%s, reward=%d",
            task.id,
            task.house_id,
            actor.member_id,
            task.reward_points,
        )
        self._publish(task_notifications.task_assigned(task))
        return task

    # ── 完了報告 ──────────────────────────────────────────────────────────────

    def submit_completion(
        self, actor: ActorContext, task_id: str, photo: ProofPhoto | None = None
    ) -> Task:
        """
        todo → pending_approval。未割り当てのタスクは報告者が受注する。

        写真はタスク更新より先にアップロードする。アップロード後に遷移が
        失敗した場合、写真はストレージに残り（孤立）、その URL は例外の
        orphaned_proof_url で呼び出し元に返す。

        Raises:
            NotFoundError: タスクが存在しない
            TaskAlreadyClaimedError: 別メンバーが先に報告した
            ConflictError: status が todo でない
            PermissionDeniedError: 他の子供に割り当て済みのタスク
            ValidationError: 写真必須なのに写真がない、写真の形式・サイズ不正
            StorageError: 写真のアップロード失敗
        """
        task = self.get_task(actor, task_id)

        if task.status is not TaskStatus.TODO:
            raise self._submit_conflict(task, actor)

        if not task.is_open and task.assigned_to != actor.member_id and not actor.is_parent:
            raise PermissionDeniedError("This task is assigned to another member")

        if task.requires_proof and photo is None:
            raise ValidationError("This task requires a photo proof")

        proof_url = self._store_photo(task, photo) if photo is not None else None

        # parent が代理で報告した場合は既存の担当者を維持する
        claimant = actor.member_id if task.is_open else task.assigned_to
        updates = {
            "status": TaskStatus.PENDING_APPROVAL,
            "assigned_to": claimant,
            "proof_url": proof_url,
            "rejection_reason": None,
        }
        try:
            updated = self._transition(task.id, TaskStatus.TODO, updates)
        except ConflictError as e:
            self._log_orphaned(task, proof_url)
            current = self._tasks.get(task.id)
            logger.warning(
                "Submission lost: task_id=%s, member_id=%s, now=%s",
                task.id,
                actor.member_id,
                current.status.value if current else "deleted",
            )
            if current is None:
                raise NotFoundError(f"Task not found: {task_id}") from e
            raise self._submit_conflict(current, actor, proof_url) from e
        except Exception:
            self._log_orphaned(task, proof_url)
            raise

        logger.info(
            "Task submitted: task_id=%s, by=%s, proof=%s",
            updated.id,
            actor.member_id,
            bool(proof_url),
        )
        self._publish_lazy(
            lambda: task_notifications.task_submitted(
                updated,
                self._members.get(actor.member_id),
                self._members.list_by_house(updated.house_id),
            )
        )
        return updated

    # ── 承認・差し戻し ────────────────────────────────────────────────────────

    def approve_task(self, actor: ActorContext, task_id: str) -> Task:
        """
        pending_approval → done。担当者の points に reward_points を加算する。

        遷移とポイント加算は同一の条件付き書き込みで行うため、二重承認でも
        加算は 1 回だけになる。

        Raises:
            PermissionDeniedError: actor が parent でない
            NotFoundError: タスクが存在しない
            ConflictError: status が pending_approval でない
        """
        self._require_parent(actor, "approve tasks")
        task = self.get_task(actor, task_id)
        if task.status is not TaskStatus.PENDING_APPROVAL:
            raise ConflictError(
                f"Task {task_id} is '{task.status.value}', not 'pending_approval'"
            )

        updated = self._transition(
            task.id,
            TaskStatus.PENDING_APPROVAL,
            {"status": TaskStatus.DONE},
            award_points=True,
        )
        logger.info(
            "Task approved: task_id=%s, by=%s, assignee=%s, awarded=%d",
            updated.id,
            actor.member_id,
            updated.assigned_to,
            updated.reward_points if updated.assigned_to else 0,
        )
        self._publish(task_notifications.task_approved(updated))
        return updated

    def reject_task(self, actor: ActorContext, task_id: str, reason: str | None = "") -> Task:
        """
        pending_approval → todo。担当者は維持し、理由を記録する。

        理由が空文字の場合は「理由なし」として None を記録する。
        """
        self._require_parent(actor, "reject tasks")
        task = self.get_task(actor, task_id)
        if task.status is not TaskStatus.PENDING_APPROVAL:
            raise ConflictError(
                f"Task {task_id} is '{task.status.value}', not 'pending_approval'"
            )

        updated = self._transition(
            task.id,
            TaskStatus.PENDING_APPROVAL,
            {"status": TaskStatus.TODO, "rejection_reason": (reason or "").strip() or None},
        )
        logger.info(
            "Task rejected: task_id=%s, by=%s, assignee=%s",
            updated.id,
            actor.member_id,
            updated.assigned_to,
        )
        self._publish(task_notifications.task_rejected(updated))
        return updated

    # ── 期限・削除 ────────────────────────────────────────────────────────────

    def extend_deadline(
        self, actor: ActorContext, task_id: str, deadline: datetime.datetime | str
    ) -> Task:
        """
        期限を変更する（status は変えない）。

        解釈できない期限は書き込み前に ValidationError になる。
        """
        self._require_parent(actor, "extend deadlines")
        new_deadline = parse_deadline(deadline)
        task = self.get_task(actor, task_id)
        updated = self._tasks.set_deadline(task.id, new_deadline)
        logger.info(
            "Deadline extended: task_id=%s, by=%s, deadline=%s",
            task.id,
            actor.member_id,
            new_deadline.isoformat(),
        )
        return updated

    def delete_task(self, actor: ActorContext, task_id: str) -> None:
        """タスクを削除する（取り消し不可・ポイントには影響しない）"""
        self._require_parent(actor, "delete tasks")
        task = self.get_task(actor, task_id)
        self._tasks.delete(task.id)
        logger.info("Task deleted: task_id=%s, by=%s", task.id, actor.member_id)

    def expire_overdue(self, now: datetime.datetime | None = None) -> list[Task]:
        """
        期限を過ぎた todo タスクを failed にする（スケジューラーから呼ぶ）。

        pending_approval のタスクは対象外。同時に完了報告されたタスクは
        CAS で報告側が勝ち、ここではスキップする。
        """
        now = now or self._clock()
        expired: list[Task] = []
        for task in self._tasks.list_overdue(now):
            try:
                updated = self._transition(
                    task.id, TaskStatus.TODO, {"status": TaskStatus.FAILED}
                )
            except (ConflictError, NotFoundError):
                logger.info("Expiry skipped (state changed): task_id=%s", task.id)
                continue
            expired.append(updated)
            self._publish(task_notifications.task_expired(updated))

        logger.info("Expiry sweep complete: expired=%d", len(expired))
        return expired

    # ── 内部ヘルパー ──────────────────────────────────────────────────────────

    @staticmethod
    def _require_parent(actor: ActorContext, action: str) -> None:
        if not actor.is_parent:
            raise PermissionDeniedError(f"Only parents can {action}")

    @staticmethod
    def _submit_conflict(
        task: Task, actor: ActorContext, proof_url: str | None = None
    ) -> ConflictError:
        """
        todo でなくなったタスクへの完了報告を例外にする。

        別メンバーの報告で pending_approval / done になった場合だけ
        TaskAlreadyClaimedError とし、期限切れ（failed）等は ConflictError とする。
        """
        claimed = task.status in (TaskStatus.PENDING_APPROVAL, TaskStatus.DONE)
        if claimed and task.assigned_to != actor.member_id:
            return TaskAlreadyClaimedError(
                f"Task {task.id} was already claimed by another member",
                orphaned_proof_url=proof_url,
            )
        return ConflictError(
            f"Task {task.id} is '{task.status.value}', not 'todo'",
            orphaned_proof_url=proof_url,
        )

    def _transition(
        self,
        task_id: str,
        expected: TaskStatus,
        updates: dict,
        award_points: bool = False,
    ) -> Task:
        target = updates["status"]
        if not can_transition(expected, target):
            raise ConflictError(
                f"Transition {expected.value} -> {target.value} is not allowed"
            )
        return self._tasks.transition(task_id, expected, updates, award_points)

    def _store_photo(self, task: Task, photo: ProofPhoto) -> str:
        ext = _PHOTO_EXTENSIONS.get(photo.content_type)
        if ext is None:
            raise ValidationError(f"Unsupported photo type: {photo.content_type}")
        if not photo.content:
            raise ValidationError("Photo is empty")
        if len(photo.content) > self._max_proof_bytes:
            raise ValidationError(
                f"Photo exceeds the maximum size of {self._max_proof_bytes} bytes"
            )
        path = f"proofs/{task.house_id}/{task.id}/{uuid.uuid4()}{ext}"
        return self._photos.upload(path, photo.content, photo.content_type)

    @staticmethod
    def _log_orphaned(task: Task, proof_url: str | None) -> None:
        if proof_url:
            logger.warning(
                "Proof uploaded but task update failed, orphaned: task_id=%s, url=%s",
                task.id,
                proof_url,
            )

    def _publish(self, events: Iterable[NotificationEvent]) -> None:
        """通知を送る。失敗はログのみで遷移結果には影響させない"""
        for event in events:
            try:
                self._notifier.publish(event)
            except Exception:
                logger.exception(
                    "Notification failed (non-critical): user_id=%s", event.user_id
                )

    def _publish_lazy(self, build: Callable[[], list[NotificationEvent]]) -> None:
        try:
            events = build()
        except Exception:
            logger.exception("Notification recipients lookup failed (non-critical)")
            return
        self._publish(events)
