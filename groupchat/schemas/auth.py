import uuid

from pydantic import BaseModel


class TokenPayload(BaseModel):
    sub: str
    username: str | None = None
    exp: int | None = None


class CurrentUser(BaseModel):
    user_id: uuid.UUID
    username: str | None = None
