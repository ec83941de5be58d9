"""
订单仓储接口
"""
from abc import ABC, abstractmethod
from typing import Optional

from .entity import Order


class OrderRepository(ABC):

    @abstractmethod
    async def get_by_id(self, order_id: str) -> Optional[Order]:
        pass

    @abstractmethod
    async def confirm_if_pending(self, order_id: str, payment_reference: Optional[str]) -> bool:
        """条件更新：仅当订单仍为 pending 时确认，返回是否由本次调用完成确认"""
        pass
