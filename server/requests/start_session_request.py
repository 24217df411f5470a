"""StartSessionRequest model."""

from pydantic import BaseModel, Field

from core import AuthSession


class StartSessionRequest(BaseModel):
    user_id: str
    access_token: str | None = Field(
        default=None, description="User JWT forwarded to the REST and realtime adapters"
    )
    email: str | None = None
    full_name: str | None = None

    def to_session(self) -> AuthSession:
        return AuthSession(**self.model_dump())
