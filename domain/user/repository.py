"""
用户角色仓储接口 - 用户本身由托管认证服务管理，这里只读取角色
"""
from abc import ABC, abstractmethod
from typing import List


class UserRoleRepository(ABC):

    @abstractmethod
    async def has_role(self, user_id: str, role: str) -> bool:
        """判断用户是否拥有指定角色"""
        pass

    @abstractmethod
    async def list_user_ids_by_role(self, role: str) -> List[str]:
        """获取拥有指定角色的全部用户ID"""
        pass
