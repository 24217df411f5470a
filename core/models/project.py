"""Project and membership models."""

from pydantic import BaseModel, ConfigDict

from .profile import Profile


class Project(BaseModel):
    model_config = ConfigDict(extra="allow")

    id: int
    name: str
    color: str | None = None
    created_by: str | None = None
    created_at: str | None = None


class ProjectMember(BaseModel):
    model_config = ConfigDict(extra="allow")

    project_id: int
    user_id: str
    created_at: str | None = None
    projects: Project | None = None
    profiles: Profile | None = None


class MemberDetails(BaseModel):
    """One entry of the roster edited in a project form."""

    user_id: str
    full_name: str | None = None
    role: str | None = None
