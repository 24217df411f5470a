"""Signed-in session model."""

from pydantic import BaseModel


class AuthSession(BaseModel):
    user_id: str
    access_token: str | None = None
    email: str | None = None
    full_name: str | None = None
