"""ドメイン固有の例外クラス"""


class ChoreQuestError(Exception):
    """ChoreQuest の基底例外"""

    code = "CHOREQUEST_ERROR"


class ValidationError(ChoreQuestError):
    """入力不正（空タイトル、0 以下の報酬、解釈できない期限 等）"""

    code = "VALIDATION_ERROR"


class PermissionDeniedError(ChoreQuestError):
    """ロールが操作を許可していない（例: 子供による承認）"""

    code = "PERMISSION_DENIED"


class NotFoundError(ChoreQuestError):
    """参照先のハウス・タスク・メンバーが存在しない"""

    code = "NOT_FOUND"


class ConflictError(ChoreQuestError):
    """読み取りから条件付き書き込みまでの間に状態が変わった"""

    code = "CONFLICT"

    def __init__(self, message: str, orphaned_proof_url: str | None = None) -> None:
        super().__init__(message)
        # アップロード済みだが遷移に失敗した写真の URL（ストレージには残る）
        self.orphaned_proof_url = orphaned_proof_url


class TaskAlreadyClaimedError(ConflictError):
    """別のメンバーが先に完了報告した（受注競争に負けた）"""

    code = "TASK_ALREADY_CLAIMED"


class StorageError(ChoreQuestError):
    """写真のアップロードに失敗した"""

    code = "STORAGE_ERROR"


class OrphanedHouseError(ChoreQuestError):
    """ハウスは作成されたが創設者のプロファイル更新に失敗した"""

    code = "ORPHANED_HOUSE"

    def __init__(self, message: str, house_id: str) -> None:
        super().__init__(message)
        self.house_id = house_id
