"""Team project entity models."""

from typing import List

from pydantic import BaseModel, Field

from .repository import Repository


class TeamProject(BaseModel):
    """Azure DevOps team project and the repositories selected from it."""

    org: str = Field(..., description='Owning organization')
    name: str = Field(..., description='Team project name')
    repositories: List[Repository] = Field(
        default_factory=list, description='Migratable repositories'
    )

    class Config:
        """Pydantic configuration."""

        frozen = True

    @property
    def has_repositories(self) -> bool:
        return len(self.repositories) > 0
