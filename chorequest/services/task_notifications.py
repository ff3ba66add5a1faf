"""タスク遷移時の通知イベント生成

ペイロード形式: {title, body, url, tag}（Service Worker が表示に使う）
同一 tag の通知は端末側で上書きされる。
"""

from __future__ import annotations

from chorequest.domain.models import Member, NotificationEvent, Role, Task

_MAX_BODY = 200


def _payload(task: Task, title: str, body: str, kind: str) -> dict:
    if len(body) > _MAX_BODY:
        body = body[: _MAX_BODY - 3] + "..."
    return {
        "title": title,
        "body": body,
        "url": f"/dashboard?task={task.id}",
        "tag": f"task-{kind}-{task.id}",
    }


def task_assigned(task: Task) -> list[NotificationEvent]:
    if not task.assigned_to or task.assigned_to == task.created_by:
        return []
    body = f"{task.title} (+{task.reward_points} XP)"
    return [
        NotificationEvent(
            user_id=task.assigned_to,
            payload=_payload(task, "Nový quest!", body, "assigned"),
        )
    ]


def task_submitted(
    task: Task, submitter: Member | None, members: list[Member]
) -> list[NotificationEvent]:
    """
    承認待ちになったことを通知する。

    notify_all_parents=True ならハウスの全 parent、それ以外は作成者へ送る。
    報告した本人には送らない。
    """
    submitter_id = submitter.id if submitter else task.assigned_to
    if task.notify_all_parents:
        recipients = [m.id for m in members if m.role is Role.PARENT]
    else:
        recipients = [task.created_by]

    name = submitter.full_name if submitter else "Někdo"
    body = f"{name} splnil(a) úkol: {task.title}"
    payload = _payload(task, "Úkol čeká na schválení", body, "submitted")
    return [
        NotificationEvent(user_id=uid, payload=payload)
        for uid in dict.fromkeys(recipients)
        if uid and uid != submitter_id
    ]


def task_approved(task: Task) -> list[NotificationEvent]:
    if not task.assigned_to:
        return []
    body = f"{task.title}: +{task.reward_points} XP"
    return [
        NotificationEvent(
            user_id=task.assigned_to,
            payload=_payload(task, "Úkol schválen!", body, "approved"),
        )
    ]


def task_rejected(task: Task) -> list[NotificationEvent]:
    if not task.assigned_to:
        return []
    body = task.title
    if task.rejection_reason:
        body = f"{task.title}: {task.rejection_reason}"
    return [
        NotificationEvent(
            user_id=task.assigned_to,
            payload=_payload(task, "Úkol vrácen k přepracování", body, "rejected"),
        )
    ]


def task_expired(task: Task) -> list[NotificationEvent]:
    if not task.assigned_to:
        return []
    body = task.title
    if task.punishment_desc:
        body = f"{task.title}: {task.punishment_desc}"
    return [
        NotificationEvent(
            user_id=task.assigned_to,
            payload=_payload(task, "Termín úkolu vypršel", body, "expired"),
        )
    ]
