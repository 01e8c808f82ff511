"""Discovery of the Azure DevOps repositories selected for migration."""

import csv
from collections import OrderedDict
from pathlib import Path
from typing import Dict, List, Optional, Tuple

from loguru import logger

from ..api.ado import AdoApi
from ..models import (
    DuplicateTargetName,
    Inventory,
    Organization,
    Pipeline,
    Repository,
    TeamProject,
)


class InventoryService:
    """Walks organizations, team projects, repositories and pipelines.

    Every listing is fetched at most once per service instance. The org and
    team project filters only restrict which subtree is visited.
    """

    def __init__(
        self,
        ado_api: AdoApi,
        github_org: str,
        org_filter: Optional[str] = None,
        team_project_filter: Optional[str] = None,
    ):
        """Initialize inventory service.

        Args:
            ado_api: Azure DevOps API
            github_org: Target GitHub organization, used to find service connections
            org_filter: Only visit this organization
            team_project_filter: Only visit this team project
        """
        self.ado_api = ado_api
        self.github_org = github_org
        self.org_filter = org_filter
        self.team_project_filter = team_project_filter
        self.logger = logger.bind(component='InventoryService')

        self._orgs: Optional[List[str]] = None
        self._team_projects: Dict[str, List[str]] = {}
        self._all_team_projects: Dict[str, List[str]] = {}
        self._repos: Dict[Tuple[str, str], List[Repository]] = {}
        self._pipelines: Dict[Tuple[str, str, str], List[Pipeline]] = {}
        self._credentials: Dict[str, Optional[str]] = {}

        # (org, team project) -> repo names, in file order
        self._repo_list: Optional[Dict[Tuple[str, str], List[str]]] = None

    def load_repo_list(self, path: str) -> int:
        """Restrict discovery to the repositories listed in a CSV file.

        The file needs ``teamproject`` and ``repo`` columns; an ``org`` column
        is required unless an org filter is set.

        Args:
            path: CSV file path

        Returns:
            Number of repositories loaded

        Raises:
            FileNotFoundError: If the file does not exist
            ValueError: If a required column or value is missing
        """
        csv_path = Path(path)
        if not csv_path.exists():
            raise FileNotFoundError(f'Repository list not found: {path}')

        repo_list: Dict[Tuple[str, str], List[str]] = OrderedDict()
        count = 0

        with open(csv_path, 'r', encoding='utf-8', newline='') as f:
            reader = csv.DictReader(f)
            fields = {name.strip().lower() for name in reader.fieldnames or []}
            missing = {'teamproject', 'repo'} - fields
            if missing:
                raise ValueError(
                    f'Repository list {path} is missing columns: {sorted(missing)}'
                )

            for line_number, row in enumerate(reader, start=2):
                row = {
                    (k or '').strip().lower(): (v or '').strip() for k, v in row.items()
                }
                org = row.get('org') or self.org_filter
                team_project = row.get('teamproject')
                repo = row.get('repo')

                if not (org and team_project and repo):
                    raise ValueError(
                        f'Repository list {path} line {line_number} needs org, '
                        f'team project and repo'
                    )

                repos = repo_list.setdefault((org, team_project), [])
                if repo not in repos:
                    repos.append(repo)
                    count += 1

        self._repo_list = repo_list
        self.logger.info(f'Loaded {count} repositories from {path}')
        return count

    async def list_orgs(self) -> List[str]:
        if self._orgs is None:
            if self._repo_list is not None:
                orgs = list(OrderedDict.fromkeys(org for org, _ in self._repo_list))
                if self.org_filter:
                    orgs = [org for org in orgs if org == self.org_filter]
                self._orgs = orgs
            elif self.org_filter:
                self._orgs = [self.org_filter]
            else:
                self.logger.info('Retrieving list of all Orgs PAT has access to...')
                user_id = await self.ado_api.get_user_id()
                self._orgs = await self.ado_api.get_organizations(user_id)

        return self._orgs

    async def list_team_projects(self, org: str) -> List[str]:
        if org not in self._team_projects:
            if self._repo_list is not None:
                team_projects = [tp for o, tp in self._repo_list if o == org]
                if self.team_project_filter:
                    team_projects = [
                        tp for tp in team_projects if tp == self.team_project_filter
                    ]
            elif self.team_project_filter:
                team_projects = [self.team_project_filter]
            else:
                team_projects = await self._list_all_team_projects(org)

            self._team_projects[org] = team_projects

        return self._team_projects[org]

    async def _list_all_team_projects(self, org: str) -> List[str]:
        if org not in self._all_team_projects:
            self._all_team_projects[org] = await self.ado_api.get_team_projects(org)
        return self._all_team_projects[org]

    async def list_repos(self, org: str, team_project: str) -> List[Repository]:
        key = (org, team_project)
        if key not in self._repos:
            if self._repo_list is not None:
                repos = [
                    Repository(org=org, team_project=team_project, name=name)
                    for name in self._repo_list.get(key, [])
                ]
            else:
                repos = [
                    Repository(org=org, team_project=team_project, name=r.name, id=r.id)
                    for r in await self.ado_api.get_enabled_repos(org, team_project)
                ]
            self._repos[key] = repos

        return self._repos[key]

    async def list_pipelines(
        self, org: str, team_project: str, repo: Repository
    ) -> List[Pipeline]:
        key = (org, team_project, repo.name)
        if key not in self._pipelines:
            repo_id = repo.id or await self.ado_api.get_repo_id(
                org, team_project, repo.name
            )
            names = await self.ado_api.get_pipelines(org, team_project, repo_id)
            self._pipelines[key] = [Pipeline(name=name) for name in names]

        return self._pipelines[key]

    async def get_repo_count(self) -> int:
        """Count the repositories in the filtered tree."""
        count = 0
        for org in await self.list_orgs():
            for team_project in await self.list_team_projects(org):
                count += len(await self.list_repos(org, team_project))
        return count

    async def get_integration_credential_id(self, org: str) -> Optional[str]:
        """Find the GitHub service connection of an organization.

        Every team project of the organization is scanned, regardless of the
        team project filter. A missing connection is logged once per org.
        """
        if org not in self._credentials:
            team_projects = await self._list_all_team_projects(org)
            credential_id = await self.ado_api.get_github_app_id(
                org, self.github_org, team_projects
            )
            if not credential_id:
                self.logger.warning(
                    f'No GitHub service connection found for org {org}. '
                    f'Pipelines in this org will not be rewired'
                )
            self._credentials[org] = credential_id

        return self._credentials[org]

    async def build_inventory(self, include_pipelines: bool = False) -> Inventory:
        """Assemble the immutable snapshot of everything selected for the run.

        Args:
            include_pipelines: Fetch pipelines for orgs with a service connection

        Returns:
            Inventory snapshot in discovery order
        """
        organizations = []

        for org in await self.list_orgs():
            credential_id = await self.get_integration_credential_id(org)
            team_projects = []

            for team_project in await self.list_team_projects(org):
                repos = await self.list_repos(org, team_project)

                if include_pipelines and credential_id:
                    with_pipelines = []
                    for repo in repos:
                        pipelines = await self.list_pipelines(org, team_project, repo)
                        with_pipelines.append(repo.copy(update={'pipelines': pipelines}))
                    repos = with_pipelines

                team_projects.append(
                    TeamProject(org=org, name=team_project, repositories=repos)
                )

            organizations.append(
                Organization(
                    name=org,
                    integration_credential_id=credential_id,
                    team_projects=team_projects,
                )
            )

        return Inventory(organizations=organizations)

    @staticmethod
    def detect_duplicate_target_names(inventory: Inventory) -> List[DuplicateTargetName]:
        return inventory.duplicate_target_names()

    def output_repo_list_to_log(self, inventory: Inventory) -> None:
        for org in inventory.organizations:
            self.logger.info(f'ADO Org: {org.name}')
            for team_project in org.team_projects:
                self.logger.info(f'  Team Project: {team_project.name}')
                for repo in team_project.repositories:
                    self.logger.info(f'    Repo: {repo.name}')
