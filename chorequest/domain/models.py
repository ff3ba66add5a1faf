"""ドメインモデル - 外部依存なしのデータ構造"""

from __future__ import annotations

import datetime
import hashlib
from dataclasses import dataclass, field
from enum import Enum


class Role(str, Enum):
    """ハウス内のメンバーロール"""

    PARENT = "parent"
    CHILD = "child"


class TaskStatus(str, Enum):
    """タスク（クエスト）のステータス"""

    TODO = "todo"
    PENDING_APPROVAL = "pending_approval"
    DONE = "done"
    FAILED = "failed"


# 許可される遷移（from → [to...]）。これ以外の status 書き込みは行わない
VALID_TRANSITIONS: dict[TaskStatus, tuple[TaskStatus, ...]] = {
    TaskStatus.TODO: (TaskStatus.PENDING_APPROVAL, TaskStatus.FAILED),
    TaskStatus.PENDING_APPROVAL: (TaskStatus.DONE, TaskStatus.TODO),
    TaskStatus.DONE: (),
    TaskStatus.FAILED: (),
}


def can_transition(current: TaskStatus, target: TaskStatus) -> bool:
    """current → target が状態遷移表で許可されているか"""
    return target in VALID_TRANSITIONS.get(current, ())


@dataclass(frozen=True)
class House:
    """ハウス（家族グループ）"""

    id: str
    name: str
    owner_id: str
    created_at: datetime.datetime | None = None


@dataclass(frozen=True)
class Member:
    """メンバープロファイル"""

    id: str  # Firebase Auth UID
    full_name: str
    role: Role = Role.CHILD
    house_id: str | None = None  # None = 未所属（ハウス作成 or 参加が必要）
    points: int = 0
    email: str = ""

    @property
    def is_assigned(self) -> bool:
        return self.house_id is not None


@dataclass(frozen=True)
class Task:
    """タスク（クエスト）"""

    id: str
    house_id: str
    title: str
    reward_points: int
    created_by: str
    status: TaskStatus = TaskStatus.TODO
    description: str = ""
    punishment_desc: str = ""
    deadline: datetime.datetime | None = None
    requires_proof: bool = False
    notify_all_parents: bool = False
    assigned_to: str | None = None  # None = 誰でも受注可能
    proof_url: str | None = None
    rejection_reason: str | None = None
    created_at: datetime.datetime | None = None
    updated_at: datetime.datetime | None = None

    @property
    def is_open(self) -> bool:
        return self.assigned_to is None


_FAR_FUTURE = datetime.datetime.max.replace(tzinfo=datetime.UTC)


def deadline_sort_key(task: Task) -> datetime.datetime:
    """期限の昇順、期限なしは末尾"""
    return task.deadline or _FAR_FUTURE


def endpoint_key(endpoint: str) -> str:
    """push endpoint の SHA256 ハッシュ先頭 16 文字（購読 Map のキー）"""
    return hashlib.sha256(endpoint.encode()).hexdigest()[:16]


@dataclass(frozen=True)
class NewTask:
    """CreateTask の入力（ID・ステータスはエンジンが決める）"""

    title: str
    reward_points: int
    description: str = ""
    punishment_desc: str = ""
    deadline: datetime.datetime | str | None = None  # 文字列は ISO-8601
    requires_proof: bool = False
    notify_all_parents: bool = False
    assigned_to: str | None = None


@dataclass(frozen=True)
class ActorContext:
    """操作を実行するメンバーの明示的なコンテキスト"""

    member_id: str
    house_id: str
    role: Role

    @property
    def is_parent(self) -> bool:
        return self.role is Role.PARENT


# 完了報告の写真の上限サイズ（MAX_PROOF_BYTES で上書き可能）
DEFAULT_MAX_PROOF_BYTES = 10 * 1024 * 1024


@dataclass(frozen=True)
class ProofPhoto:
    """完了報告に添付する写真"""

    content: bytes
    content_type: str
    filename: str = ""


@dataclass(frozen=True)
class InviteIntent:
    """招待リンクが運ぶ参加意図（house_id + role）"""

    house_id: str
    role: Role = Role.CHILD


@dataclass(frozen=True)
class NotificationEvent:
    """通知サイドチャネルに渡すイベント"""

    user_id: str
    payload: dict = field(default_factory=dict)  # {title, body, url, tag}


@dataclass(frozen=True)
class PushSubscription:
    """ブラウザから受け取った Push サブスクリプション情報"""

    endpoint: str
    keys: dict  # {"auth": "...", "p256dh": "..."}


@dataclass(frozen=True)
class TaskStats:
    """ダッシュボード用のステータス別件数"""

    todo: int = 0
    pending_approval: int = 0
    done: int = 0
    failed: int = 0
