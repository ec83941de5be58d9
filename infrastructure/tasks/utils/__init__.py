"""Task base class and the by-name dispatcher used by the API process."""
from .dispatcher import TaskDispatcher
from .base_task import BaseTask

__all__ = ["TaskDispatcher", "BaseTask"]
