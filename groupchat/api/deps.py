from fastapi import Depends
from sqlalchemy.ext.asyncio import AsyncSession

from groupchat.db.session import get_db
from groupchat.repositories.sql import SqlGroupRepository
from groupchat.services.group_service import GroupService


async def get_group_service(db: AsyncSession = Depends(get_db)) -> GroupService:
    return GroupService(SqlGroupRepository(db))
