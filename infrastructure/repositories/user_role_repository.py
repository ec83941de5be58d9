"""
用户角色仓储实现
"""
from typing import List
from sqlalchemy.ext.asyncio import AsyncSession
from sqlalchemy import select

from domain.user.repository import UserRoleRepository
from infrastructure.models.user_role import UserRoleModel


class SQLAlchemyUserRoleRepository(UserRoleRepository):

    def __init__(self, session: AsyncSession):
        self.session = session

    async def has_role(self, user_id: str, role: str) -> bool:
        result = await self.session.execute(
            select(UserRoleModel.id)
            .where(UserRoleModel.user_id == user_id, UserRoleModel.role == role)
            .limit(1)
        )
        return result.scalar() is not None

    async def list_user_ids_by_role(self, role: str) -> List[str]:
        result = await self.session.execute(
            select(UserRoleModel.user_id).where(UserRoleModel.role == role)
        )
        return [row for row in result.scalars().all()]
