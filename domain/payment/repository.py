"""
支付仓储接口 - 定义支付数据访问的抽象接口
"""
from abc import ABC, abstractmethod
from datetime import datetime
from typing import Optional, List

from .entity import Payment, PaymentStatus


class PaymentRepository(ABC):
    """支付仓储抽象接口 - 只定义能做什么，不管怎么做"""

    @abstractmethod
    async def create(self, payment: Payment) -> Payment:
        """创建支付记录"""
        pass

    @abstractmethod
    async def get_by_id(self, payment_id: str) -> Optional[Payment]:
        """根据ID获取支付"""
        pass

    @abstractmethod
    async def get_latest_by_order(self, order_id: str) -> Optional[Payment]:
        """订单当前支付：按创建时间取最新一条"""
        pass

    @abstractmethod
    async def get_by_transaction_id(self, transaction_id: str) -> Optional[Payment]:
        """根据提供商交易号获取支付"""
        pass

    @abstractmethod
    async def find_latest_pending_by_amount(self, amount: int) -> Optional[Payment]:
        """兜底匹配：金额相同、状态为 pending 的最新支付"""
        pass

    @abstractmethod
    async def list_stale_non_terminal(self, older_than: datetime, limit: int = 50) -> List[Payment]:
        """获取长时间停留在非终态的支付（对账补偿）"""
        pass

    @abstractmethod
    async def compare_and_set(self, payment: Payment, expected_status: PaymentStatus) -> bool:
        """条件更新：仅当库中状态仍为 expected_status 时写入。

        返回 False 表示并发写入者已抢先修改，调用方需重新读取。
        """
        pass
