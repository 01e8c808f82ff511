"""Repository entity models."""

from typing import List, NamedTuple, Optional

from pydantic import BaseModel, Field

from ..utils.naming import target_repo_name


class AdoRepository(BaseModel):
    """Azure DevOps git repository as returned by the repositories API."""

    id: str = Field(..., description='Repository ID')
    name: str = Field(..., description='Repository name')
    size: Optional[int] = Field(default=None, description='Repository size in bytes')
    is_disabled: bool = Field(default=False, description='Repository is disabled')


class Pipeline(BaseModel):
    """Azure DevOps build pipeline bound to a repository."""

    name: str = Field(..., description=r'Pipeline path, e.g. \folder\name')

    class Config:
        """Pydantic configuration."""

        frozen = True


class RepoCoordinates(NamedTuple):
    """Source location of a repository."""

    org: str
    team_project: str
    repo: str

    def __str__(self) -> str:
        return f'{self.org}/{self.team_project}/{self.repo}'


class Repository(BaseModel):
    """Repository selected for migration."""

    org: str = Field(..., description='Azure DevOps organization')
    team_project: str = Field(..., description='Azure DevOps team project')
    name: str = Field(..., description='Repository name')
    id: Optional[str] = Field(default=None, description='Repository ID')
    pipelines: List[Pipeline] = Field(
        default_factory=list, description='Pipelines building this repository'
    )

    class Config:
        """Pydantic configuration."""

        frozen = True

    @property
    def target_name(self) -> str:
        """Name of the repository in the target GitHub organization."""
        return target_repo_name(self.team_project, self.name)

    @property
    def coordinates(self) -> RepoCoordinates:
        return RepoCoordinates(self.org, self.team_project, self.name)
