import uuid
from dataclasses import dataclass
from datetime import datetime, timedelta, timezone
from typing import Any, Optional

from fastapi.security import HTTPBearer
from jose import jwt
from pydantic import BaseModel

from app.ledger.core.config import settings
from app.ledger.core.enums import Role

bearer_scheme = HTTPBearer(auto_error=False)
AUTHORIZER_TOKEN_HEADER = "X-Authorizer-Token"


class TokenData(BaseModel):
    sub: str
    role: Role
    name: str | None = None


@dataclass(frozen=True)
class Actor:
    """Identity resolved by the external identity layer."""

    actor_id: uuid.UUID
    role: Role
    name: str | None = None

    @classmethod
    def from_token_data(cls, token_data: TokenData) -> "Actor":
        return cls(actor_id=uuid.UUID(token_data.sub), role=token_data.role, name=token_data.name)


def create_access_token(data: dict[str, Any], expires_delta: Optional[timedelta] = None) -> str:
    to_encode = data.copy()
    expire = datetime.now(timezone.utc) + (expires_delta or timedelta(minutes=settings.ACCESS_TOKEN_EXPIRE_MINUTES))
    to_encode.update({"exp": expire})
    return jwt.encode(to_encode, settings.SECRET_KEY, algorithm=settings.ALGORITHM)


def decode_token(token: str) -> dict[str, Any]:
    return jwt.decode(token, settings.SECRET_KEY, algorithms=[settings.ALGORITHM])


def create_actor_access_token(actor: Actor, expires_delta: Optional[timedelta] = None) -> str:
    return create_access_token(
        {"sub": str(actor.actor_id), "role": actor.role.value, "name": actor.name},
        expires_delta=expires_delta,
    )
