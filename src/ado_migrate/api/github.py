"""GitHub REST and GraphQL API."""

from pathlib import Path
from typing import Any, Callable, Dict, List, NamedTuple, Optional
from urllib.parse import quote

from loguru import logger

from ..models.migration import MigrationJob, MigrationLogReference, MigrationState
from .client import HttpClient
from .exceptions import ApiError, DuplicateTargetError, NotFoundError

PER_PAGE = 100
MIGRATION_SOURCE_NAME = 'Azure DevOps Source'

START_MIGRATION_MUTATION = """
mutation startRepositoryMigration(
    $sourceId: ID!,
    $ownerId: ID!,
    $sourceRepositoryUrl: URI!,
    $repositoryName: String!,
    $continueOnError: Boolean!,
    $accessToken: String!,
    $githubPat: String,
    $targetRepoVisibility: String) {
  startRepositoryMigration(
    input: {
      sourceId: $sourceId,
      ownerId: $ownerId,
      sourceRepositoryUrl: $sourceRepositoryUrl,
      repositoryName: $repositoryName,
      continueOnError: $continueOnError,
      accessToken: $accessToken,
      githubPat: $githubPat,
      targetRepoVisibility: $targetRepoVisibility
    }
  ) {
    repositoryMigration { id, sourceUrl, state, failureReason }
  }
}
"""

GET_MIGRATION_QUERY = """
query($id: ID!) {
  node(id: $id) {
    ... on Migration {
      id, sourceUrl, migrationLogUrl, state, warningsCount, failureReason, repositoryName
    }
  }
}
"""

GET_MIGRATION_LOG_URL_QUERY = """
query ($org: String!, $repo: String!) {
  organization(login: $org) {
    repositoryMigrations(last: 1, repositoryName: $repo) {
      nodes { id, migrationLogUrl }
    }
  }
}
"""


def _q(value: str) -> str:
    return quote(value, safe='')


class Team(NamedTuple):
    id: str
    name: str
    slug: str


class GithubApi:
    """GitHub operations used by the migration."""

    def __init__(self, client: HttpClient, graphql_url: Optional[str] = None):
        """Initialize GitHub API.

        Args:
            client: Client authenticated against the GitHub API
            graphql_url: GraphQL endpoint, defaults to ``<api url>/graphql``
        """
        self.client = client
        self.graphql_url = graphql_url or f'{client.base_url}/graphql'
        self.logger = logger.bind(component='GithubApi')

    async def _get_all(
        self,
        endpoint: str,
        items: Optional[Callable[[Any], List[Dict[str, Any]]]] = None,
    ) -> List[Dict[str, Any]]:
        """Collect every page of a GitHub REST list endpoint."""
        results: List[Dict[str, Any]] = []
        page = 1

        while True:
            response = await self.client.get_async(
                endpoint, params={'per_page': PER_PAGE, 'page': page}
            )
            page_items = items(response.data) if items else response.data
            page_items = page_items or []
            results.extend(page_items)

            if len(page_items) < PER_PAGE:
                break
            page += 1

        return results

    async def get_organization_id(self, org: str) -> str:
        payload = {
            'query': 'query($login: String!) {organization(login: $login) { login, id, name } }',
            'variables': {'login': org},
        }
        data = await self.client.post_graphql_async(self.graphql_url, payload)

        organization = (data.get('data') or {}).get('organization')
        if not organization:
            raise NotFoundError(f"Failed to lookup the Organization ID for organization '{org}'")
        return organization['id']

    async def create_ado_migration_source(
        self, org_id: str, ado_server_url: Optional[str] = None
    ) -> str:
        """Register Azure DevOps as a migration source owned by the organization."""
        payload = {
            'query': (
                'mutation createMigrationSource($name: String!, $url: String!, '
                '$ownerId: ID!, $type: MigrationSourceType!) { '
                'createMigrationSource(input: {name: $name, url: $url, '
                'ownerId: $ownerId, type: $type}) '
                '{ migrationSource { id, name, url, type } } }'
            ),
            'variables': {
                'name': MIGRATION_SOURCE_NAME,
                'url': ado_server_url or 'https://dev.azure.com',
                'ownerId': org_id,
                'type': 'AZURE_DEVOPS',
            },
            'operationName': 'createMigrationSource',
        }
        data = await self.client.post_graphql_async(self.graphql_url, payload)
        return data['data']['createMigrationSource']['migrationSource']['id']

    async def start_migration(
        self,
        migration_source_id: str,
        source_repo_url: str,
        org_id: str,
        github_org: str,
        repo: str,
        source_token: str,
        target_token: str,
        target_repo_visibility: Optional[str] = None,
    ) -> str:
        """Queue a repository migration.

        Returns:
            The migration ID

        Raises:
            DuplicateTargetError: If the target repository already exists
        """
        payload = {
            'query': START_MIGRATION_MUTATION,
            'variables': {
                'sourceId': migration_source_id,
                'ownerId': org_id,
                'sourceRepositoryUrl': source_repo_url,
                'repositoryName': repo,
                'continueOnError': True,
                'accessToken': source_token,
                'githubPat': target_token,
                'targetRepoVisibility': target_repo_visibility,
            },
            'operationName': 'startRepositoryMigration',
        }

        try:
            data = await self.client.post_graphql_async(self.graphql_url, payload)
        except ApiError as e:
            if f'A repository called {github_org}/{repo} already exists' in str(e):
                raise DuplicateTargetError(github_org, repo)
            raise

        return data['data']['startRepositoryMigration']['repositoryMigration']['id']

    async def get_migration(self, migration_id: str) -> MigrationJob:
        """Fetch a fresh snapshot of a migration."""
        payload = {'query': GET_MIGRATION_QUERY, 'variables': {'id': migration_id}}
        data = await self.client.post_graphql_async(self.graphql_url, payload)

        node = (data.get('data') or {}).get('node')
        if not node:
            raise NotFoundError(f'Migration {migration_id} not found')

        return MigrationJob(
            migration_id=migration_id,
            state=MigrationState.classify(node.get('state')),
            repository_name=node.get('repositoryName'),
            failure_reason=node.get('failureReason'),
            migration_log_url=node.get('migrationLogUrl'),
            warnings_count=node.get('warningsCount') or 0,
        )

    async def get_migration_log_url(
        self, org: str, repo: str
    ) -> Optional[MigrationLogReference]:
        """Get the latest migration of a repository.

        Returns:
            The migration and its log URL (empty until available), or None
            when the repository has never been migrated
        """
        payload = {
            'query': GET_MIGRATION_LOG_URL_QUERY,
            'variables': {'org': org, 'repo': repo},
        }
        data = await self.client.post_graphql_async(self.graphql_url, payload)

        nodes = data['data']['organization']['repositoryMigrations']['nodes']
        if not nodes:
            return None

        return MigrationLogReference(
            migration_id=nodes[0]['id'],
            migration_log_url=nodes[0].get('migrationLogUrl') or None,
        )

    async def get_teams(self, org: str) -> List[Team]:
        teams = await self._get_all(f'/orgs/{_q(org)}/teams')
        return [Team(str(t['id']), t['name'], t['slug']) for t in teams]

    async def create_team(self, org: str, team_name: str) -> Team:
        response = await self.client.post_async(
            f'/orgs/{_q(org)}/teams', data={'name': team_name, 'privacy': 'closed'}
        )
        return Team(str(response.data['id']), response.data['name'], response.data['slug'])

    async def get_team_slug(self, org: str, team_name: str) -> str:
        """Look up a team slug by case-insensitive name.

        Raises:
            NotFoundError: If no team has that name
        """
        for team in await self.get_teams(org):
            if team.name.upper() == team_name.upper():
                return team.slug
        raise NotFoundError(f"Team '{team_name}' not found in '{org}'")

    async def add_team_to_repo(
        self, org: str, repo: str, team_slug: str, role: str
    ) -> None:
        await self.client.put_async(
            f'/orgs/{_q(org)}/teams/{_q(team_slug)}/repos/{_q(org)}/{_q(repo)}',
            data={'permission': role},
        )

    async def get_idp_group_id(self, org: str, group_name: str) -> int:
        groups = await self._get_all(
            f'/orgs/{_q(org)}/external-groups', items=lambda data: data.get('groups')
        )
        for group in groups:
            if (group.get('group_name') or '').lower() == group_name.lower():
                return int(group['group_id'])
        raise NotFoundError(f"Identity provider group '{group_name}' not found in '{org}'")

    async def add_emu_group_to_team(self, org: str, team_slug: str, group_id: int) -> None:
        await self.client.patch_async(
            f'/orgs/{_q(org)}/teams/{_q(team_slug)}/external-groups',
            data={'group_id': group_id},
        )

    async def download_file(self, url: str, destination: Path) -> None:
        await self.client.download_async(url, destination)
