"""Services layer - ハウス管理とタスクのライフサイクル"""

from chorequest.services.house_service import HouseService
from chorequest.services.task_engine import TaskEngine

__all__ = ["HouseService", "TaskEngine"]
