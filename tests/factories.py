"""Helpers that write records straight through a repository."""

from datetime import datetime, timezone

from groupchat.schemas.messages import GroupMessage, MessageType


async def store_message(repository, group_id, sender_id, content="hello", created_at=None):
    message = GroupMessage(
        group_id=group_id,
        sender_id=sender_id,
        content=content,
        message_type=MessageType.TEXT,
        created_at=created_at or datetime.now(timezone.utc),
    )
    async with repository.transaction():
        return await repository.insert_message(message)
