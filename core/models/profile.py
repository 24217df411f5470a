"""Profile model."""

from typing import Literal

from pydantic import BaseModel, ConfigDict

Role = Literal["admin", "manager", "employee"]


class Profile(BaseModel):
    model_config = ConfigDict(extra="allow")

    id: str
    full_name: str | None = None
    avatar_url: str | None = None
    role: Role = "employee"
    updated_at: str | None = None
    last_sign_in_at: str | None = None
    default_project_id: int | None = None
