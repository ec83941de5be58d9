"""
通知仓储接口
"""
from abc import ABC, abstractmethod
from typing import List, Optional

from .entity import Notification, PushSubscription


class NotificationRepository(ABC):

    @abstractmethod
    async def create(self, notification: Notification) -> Notification:
        """创建通知"""
        pass

    @abstractmethod
    async def get_by_id(self, notification_id: str) -> Optional[Notification]:
        pass

    @abstractmethod
    async def list_by_user(
        self,
        user_id: str,
        skip: int = 0,
        limit: int = 20,
        unread_only: bool = False,
    ) -> List[Notification]:
        """获取用户通知（最新在前）"""
        pass

    @abstractmethod
    async def count_by_user(self, user_id: str, unread_only: bool = False) -> int:
        pass

    @abstractmethod
    async def mark_read(self, notification_id: str) -> bool:
        pass

    @abstractmethod
    async def mark_all_read(self, user_id: str) -> int:
        pass


class PushSubscriptionRepository(ABC):

    @abstractmethod
    async def list_by_user(self, user_id: str) -> List[PushSubscription]:
        pass

    @abstractmethod
    async def delete_by_endpoints(self, endpoints: List[str]) -> int:
        """删除失效端点，返回删除数量"""
        pass

    @abstractmethod
    async def upsert(self, subscription: PushSubscription) -> PushSubscription:
        """按 endpoint 新增或更新订阅（同一端点换绑用户时覆盖）"""
        pass
