"""Organization and inventory snapshot models."""

from collections import defaultdict
from typing import Dict, Iterator, List, Optional

from pydantic import BaseModel, Field

from .project import TeamProject
from .repository import RepoCoordinates, Repository


class Organization(BaseModel):
    """Azure DevOps organization selected for migration."""

    name: str = Field(..., description='Organization name')
    integration_credential_id: Optional[str] = Field(
        default=None,
        description='GitHub service connection ID used to rewire pipelines',
    )
    team_projects: List[TeamProject] = Field(
        default_factory=list, description='Team projects in discovery order'
    )

    class Config:
        """Pydantic configuration."""

        frozen = True

    @property
    def has_integration_credential(self) -> bool:
        return bool(self.integration_credential_id)


class DuplicateTargetName(BaseModel):
    """A target repository name produced by more than one source repository."""

    target_name: str = Field(..., description='Colliding GitHub repository name')
    sources: List[RepoCoordinates] = Field(
        ..., description='Every source repository producing the name'
    )

    def describe(self) -> str:
        sources = ', '.join(str(source) for source in self.sources)
        return f'DUPLICATE REPO NAME: {self.target_name} (from {sources})'


class Inventory(BaseModel):
    """Immutable snapshot of everything selected for a run."""

    organizations: List[Organization] = Field(default_factory=list)

    class Config:
        """Pydantic configuration."""

        frozen = True

    def repositories(self) -> Iterator[Repository]:
        """Iterate repositories in discovery order."""
        for org in self.organizations:
            for team_project in org.team_projects:
                yield from team_project.repositories

    @property
    def repo_count(self) -> int:
        return sum(1 for _ in self.repositories())

    def orgs_missing_credential(self) -> List[str]:
        return [
            org.name for org in self.organizations if not org.has_integration_credential
        ]

    def duplicate_target_names(self) -> List[DuplicateTargetName]:
        """Find target names shared by two or more source repositories.

        The result does not depend on discovery order: names and their sources
        are sorted.
        """
        by_name: Dict[str, List[RepoCoordinates]] = defaultdict(list)
        for repo in self.repositories():
            by_name[repo.target_name].append(repo.coordinates)

        return [
            DuplicateTargetName(target_name=name, sources=sorted(sources))
            for name, sources in sorted(by_name.items())
            if len(sources) > 1
        ]
