# wasteroute/models/user.py
from typing import Any, Dict, Literal

from pydantic import BaseModel, ConfigDict, EmailStr, Field

RoleName = Literal["requester", "collector", "administrator"]


class RegisterIn(BaseModel):
    model_config = ConfigDict(str_strip_whitespace=True)

    email: EmailStr
    password: str = Field(..., min_length=6)
    name: str = Field(..., min_length=1, max_length=100)
    # administrators are never self-registered
    role: Literal["requester", "collector"] = "requester"


class RoleUpdateIn(BaseModel):
    role: RoleName


class UserOut(BaseModel):
    id: str
    email: str
    name: str
    role: str


class TokenOut(BaseModel):
    access_token: str
    token_type: str = "bearer"
    role: str


def user_out(doc: Dict[str, Any]) -> UserOut:
    return UserOut(
        id=str(doc["_id"]),
        email=doc["email"],
        name=doc.get("name", ""),
        role=doc.get("role", ""),
    )
