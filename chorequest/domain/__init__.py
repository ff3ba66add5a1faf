"""Domain layer - 外部依存なしのドメインモデルとインターフェース定義"""

from chorequest.domain.errors import (
    ChoreQuestError,
    ConflictError,
    NotFoundError,
    OrphanedHouseError,
    PermissionDeniedError,
    StorageError,
    TaskAlreadyClaimedError,
    ValidationError,
)
from chorequest.domain.models import (
    ActorContext,
    House,
    InviteIntent,
    Member,
    NewTask,
    NotificationEvent,
    ProofPhoto,
    PushSubscription,
    Role,
    Task,
    TaskStats,
    TaskStatus,
)
from chorequest.domain.ports import (
    HouseRepository,
    MemberRepository,
    NotificationPublisher,
    PhotoStorage,
    PushSubscriptionRepository,
    TaskRepository,
)

__all__ = [
    # Models
    "ActorContext",
    "House",
    "InviteIntent",
    "Member",
    "NewTask",
    "NotificationEvent",
    "ProofPhoto",
    "PushSubscription",
    "Role",
    "Task",
    "TaskStats",
    "TaskStatus",
    # Errors
    "ChoreQuestError",
    "ValidationError",
    "PermissionDeniedError",
    "NotFoundError",
    "ConflictError",
    "TaskAlreadyClaimedError",
    "StorageError",
    "OrphanedHouseError",
    # Ports
    "HouseRepository",
    "MemberRepository",
    "TaskRepository",
    "PushSubscriptionRepository",
    "PhotoStorage",
    "NotificationPublisher",
]
