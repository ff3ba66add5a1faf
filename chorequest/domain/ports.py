"""Ports - 外部コラボレーターのインターフェース定義（ABC）

各 Port は永続化・オブジェクトストレージ・通知との契約を定義する。
Adapter はこれらの ABC を継承し、全ての抽象メソッドを実装する必要がある。
"""

from __future__ import annotations

import datetime
from abc import ABC, abstractmethod

from chorequest.domain.models import (
    House,
    Member,
    NotificationEvent,
    PushSubscription,
    Role,
    Task,
    TaskStatus,
)


class HouseRepository(ABC):
    """ハウスの永続化"""

    @abstractmethod
    def create(self, name: str, owner_id: str) -> House:
        """ハウスを作成して返す"""
        pass

    @abstractmethod
    def get(self, house_id: str) -> House | None:
        """ハウスを取得。存在しない場合は None"""
        pass

    @abstractmethod
    def rename(self, house_id: str, name: str) -> House:
        """名前を変更する。存在しない場合は NotFoundError"""
        pass


class MemberRepository(ABC):
    """メンバープロファイルの永続化"""

    @abstractmethod
    def get(self, member_id: str) -> Member | None:
        """プロファイルを取得。存在しない場合は None"""
        pass

    @abstractmethod
    def create(self, member: Member) -> Member:
        """プロファイルを作成する（既存なら既存を返す）"""
        pass

    @abstractmethod
    def assign(self, member_id: str, house_id: str, role: Role) -> Member:
        """house_id と role を設定する。存在しない場合は NotFoundError"""
        pass

    @abstractmethod
    def list_by_house(self, house_id: str) -> list[Member]:
        """ハウスのメンバー一覧"""
        pass


class TaskRepository(ABC):
    """タスクの永続化

    status の変更は必ず transition() を経由する（条件付き書き込み）。
    """

    @abstractmethod
    def create(self, task: Task) -> Task:
        """タスクを作成。ID 未指定なら採番して返す"""
        pass

    @abstractmethod
    def get(self, task_id: str) -> Task | None:
        """タスクを取得。存在しない場合は None"""
        pass

    @abstractmethod
    def list_by_house(
        self,
        house_id: str,
        status: TaskStatus | None = None,
        assigned_to: str | None = None,
    ) -> list[Task]:
        """ハウスのタスク一覧（期限の昇順、期限なしは末尾）"""
        pass

    @abstractmethod
    def transition(
        self,
        task_id: str,
        expected: TaskStatus,
        updates: dict,
        award_points: bool = False,
    ) -> Task:
        """
        status が expected の場合のみ updates を書き込む（CAS）。

        award_points=True の場合、同一トランザクション内で assigned_to の
        points に reward_points をアトミックに加算する。

        Raises:
            NotFoundError: タスクが存在しない
            ConflictError: 書き込み時点の status が expected と異なる
        """
        pass

    @abstractmethod
    def set_deadline(self, task_id: str, deadline: datetime.datetime) -> Task:
        """期限を更新する（status は変えない）"""
        pass

    @abstractmethod
    def delete(self, task_id: str) -> None:
        """タスクを削除。存在しない場合は NotFoundError"""
        pass

    @abstractmethod
    def list_overdue(self, now: datetime.datetime) -> list[Task]:
        """status=todo かつ deadline < now のタスク（全ハウス横断）"""
        pass


class PushSubscriptionRepository(ABC):
    """Web Push サブスクリプションの永続化（endpoint キーで upsert）"""

    @abstractmethod
    def upsert(self, user_id: str, subscription: PushSubscription) -> str:
        """サブスクリプションを保存。キーを返す"""
        pass

    @abstractmethod
    def remove(self, user_id: str, endpoint: str) -> None:
        """endpoint に対応するサブスクリプションを削除"""
        pass

    @abstractmethod
    def list(self, user_id: str) -> list[PushSubscription]:
        """ユーザーの全サブスクリプション"""
        pass


class PhotoStorage(ABC):
    """写真証拠のアップロード（GCS 等）"""

    @abstractmethod
    def upload(self, path: str, content: bytes, content_type: str) -> str:
        """アップロードして取得可能な URL を返す。失敗時は StorageError"""
        pass

    @abstractmethod
    def public_url(self, path: str) -> str:
        """path の公開 URL"""
        pass


class NotificationPublisher(ABC):
    """通知サイドチャネル（fire-and-forget）"""

    @abstractmethod
    def publish(self, event: NotificationEvent) -> None:
        """イベントを送信する"""
        pass
