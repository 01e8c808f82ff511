"""Azure DevOps REST API."""

from typing import Any, Dict, Iterable, List, Optional, Tuple
from urllib.parse import quote

from loguru import logger
from pydantic import BaseModel, Field

from ..models.repository import AdoRepository
from .client import HttpClient
from .exceptions import ApiError, NotFoundError

VSSPS_URL = 'https://app.vssps.visualstudio.com'
GIT_REPOS_SECURITY_NAMESPACE = '2e9eb7ed-3c0a-47d4-87c1-0ffdd275fd87'
# Every git permission except read
LOCK_DENY_MASK = 56828
PROJECT_VALID_USERS = 'Project Valid Users'


def _q(value: str) -> str:
    return quote(value, safe='')


def normalize_pipeline_path(path: str, name: Optional[str] = None) -> str:
    r"""Normalize a pipeline folder and name to ``\folder\name``."""
    parts = [part for part in path.split('\\') if part]
    if name is not None:
        parts.append(name)
    return '\\' + '\\'.join(parts)


class PipelineDefinition(BaseModel):
    """Repository settings of a build definition that survive rewiring."""

    default_branch: str = Field(..., description='Default branch without refs/heads/')
    clean: str = Field(default='null', description='Clean option')
    checkout_submodules: str = Field(default='null', description='Submodule checkout')
    triggers: Optional[Any] = Field(default=None, description='Build triggers')


class AdoApi:
    """Azure DevOps operations used by the migration."""

    def __init__(self, client: HttpClient):
        """Initialize Azure DevOps API.

        Args:
            client: Client authenticated against the Azure DevOps server
        """
        self.client = client
        self.logger = logger.bind(component='AdoApi')
        self._pipeline_ids: Dict[Tuple[str, str, str], int] = {}
        self._pipeline_names: Dict[Tuple[str, str], List[Dict[str, Any]]] = {}

    @property
    def base_url(self) -> str:
        return self.client.base_url

    def _org_url(self, org: str) -> str:
        return f'{self.base_url}/{_q(org)}'

    def _project_url(self, org: str, team_project: str) -> str:
        return f'{self._org_url(org)}/{_q(team_project)}'

    async def get_user_id(self) -> str:
        """Get the public alias of the authenticated user.

        Raises:
            ApiError: If the profile carries no user ID
        """
        url = f'{VSSPS_URL}/_apis/profile/profiles/me?api-version=5.0-preview.1'
        response = await self.client.get_async(url)

        data = response.data or {}
        user_id = (
            data.get('coreAttributes', {}).get('PublicAlias', {}).get('value')
            if isinstance(data, dict)
            else None
        )
        if not user_id:
            raise ApiError('Unexpected response when retrieving User ID', response_data=data)
        return user_id

    async def get_organizations(self, user_id: str) -> List[str]:
        url = f'{VSSPS_URL}/_apis/accounts'
        accounts = await self.client.get_paginated_async(
            url, params={'memberId': user_id, 'api-version': '5.0-preview.1'}
        )
        return [a.get('accountName') or a.get('AccountName') for a in accounts]

    async def get_team_projects(self, org: str) -> List[str]:
        url = f'{self._org_url(org)}/_apis/projects'
        projects = await self.client.get_paginated_async(
            url, params={'api-version': '6.1-preview'}
        )
        return [p['name'] for p in projects]

    async def get_team_project_id(self, org: str, team_project: str) -> str:
        url = f'{self._org_url(org)}/_apis/projects/{_q(team_project)}'
        response = await self.client.get_async(
            url, params={'api-version': '5.0-preview.1'}
        )
        return response.data['id']

    async def get_repos(self, org: str, team_project: str) -> List[AdoRepository]:
        url = f'{self._project_url(org, team_project)}/_apis/git/repositories'
        repos = await self.client.get_paginated_async(
            url, params={'api-version': '6.1-preview.1'}
        )
        return [
            AdoRepository(
                id=r['id'],
                name=r['name'],
                size=r.get('size'),
                is_disabled=bool(r.get('isDisabled', False)),
            )
            for r in repos
        ]

    async def get_enabled_repos(self, org: str, team_project: str) -> List[AdoRepository]:
        """Get the repositories of a team project that are not disabled."""
        return [r for r in await self.get_repos(org, team_project) if not r.is_disabled]

    async def get_repo_id(self, org: str, team_project: str, repo: str) -> str:
        url = f'{self._project_url(org, team_project)}/_apis/git/repositories/{_q(repo)}'
        response = await self.client.get_async(url, params={'api-version': '4.1'})
        return response.data['id']

    async def get_pipelines(self, org: str, team_project: str, repo_id: str) -> List[str]:
        r"""Get the pipelines building a repository as ``\folder\name`` paths."""
        url = f'{self._project_url(org, team_project)}/_apis/build/definitions'
        definitions = await self.client.get_paginated_async(
            url,
            params={
                'repositoryId': repo_id,
                'repositoryType': 'TfsGit',
                'queryOrder': 'lastModifiedDescending',
            },
        )

        pipelines = []
        for definition in definitions:
            path = definition.get('path') or ''
            path = '' if path == '\\' else path
            pipelines.append(f'{path}\\{definition["name"]}')
        return pipelines

    async def get_github_app_id(
        self, org: str, github_org: str, team_projects: Iterable[str]
    ) -> Optional[str]:
        """Find the GitHub service connection usable for pipeline rewiring.

        A connection matches when it is of type ``GitHub`` and named after the
        GitHub organization, or of type ``GitHubProximaPipelines`` and named
        after the team project holding it.

        Args:
            org: Azure DevOps organization
            github_org: Target GitHub organization
            team_projects: Team projects to scan, in order

        Returns:
            ID of the first matching service connection, or None
        """
        for team_project in team_projects:
            url = f'{self._project_url(org, team_project)}/_apis/serviceendpoint/endpoints'
            endpoints = await self.client.get_paginated_async(
                url, params={'api-version': '6.0-preview.4'}
            )

            for endpoint in endpoints:
                kind = (endpoint.get('type') or '').lower()
                name = (endpoint.get('name') or '').lower()
                if (kind == 'github' and name == github_org.lower()) or (
                    kind == 'githubproximapipelines' and name == team_project.lower()
                ):
                    return endpoint['id']

        return None

    async def get_identity_descriptor(
        self, org: str, team_project_id: str, group_name: str
    ) -> str:
        url = f'https://vssps.dev.azure.com/{_q(org)}/_apis/identities'
        identities = await self.client.get_paginated_async(
            url,
            params={
                'searchFilter': 'General',
                'filterValue': group_name,
                'queryMembership': 'None',
                'api-version': '6.1-preview.1',
            },
        )

        for identity in identities:
            scope = identity.get('properties', {}).get('LocalScopeId', {})
            if scope.get('$value') == team_project_id:
                return identity['descriptor']

        raise NotFoundError(
            f'Identity {group_name!r} not found in team project {team_project_id}'
        )

    async def lock_repo(
        self, org: str, team_project_id: str, repo_id: str, identity_descriptor: str
    ) -> None:
        """Deny every write permission on a repository to an identity."""
        url = (
            f'{self._org_url(org)}/_apis/accesscontrolentries/'
            f'{GIT_REPOS_SECURITY_NAMESPACE}?api-version=6.1-preview.1'
        )
        payload = {
            'token': f'repoV2/{team_project_id}/{repo_id}',
            'merge': True,
            'accessControlEntries': [
                {
                    'descriptor': identity_descriptor,
                    'allow': 0,
                    'deny': LOCK_DENY_MASK,
                    'extendedInfo': {
                        'effectiveAllow': 0,
                        'effectiveDeny': LOCK_DENY_MASK,
                        'inheritedAllow': 0,
                        'inheritedDeny': LOCK_DENY_MASK,
                    },
                }
            ],
        }
        await self.client.post_async(url, data=payload)

    async def disable_repo(self, org: str, team_project: str, repo_id: str) -> None:
        url = (
            f'{self._project_url(org, team_project)}/_apis/git/repositories/'
            f'{_q(repo_id)}?api-version=6.1-preview.1'
        )
        await self.client.patch_async(url, data={'isDisabled': True})

    async def contains_service_connection(
        self, org: str, team_project: str, service_connection_id: str
    ) -> bool:
        """Check whether a service connection is shared with a team project."""
        url = (
            f'{self._project_url(org, team_project)}/_apis/serviceendpoint/endpoints/'
            f'{_q(service_connection_id)}?api-version=6.0-preview.4'
        )
        response = await self.client.get_async(url)
        # Unshared connections come back as a literal null body
        return response.data not in (None, '', 'null')

    async def share_service_connection(
        self,
        org: str,
        team_project: str,
        team_project_id: str,
        service_connection_id: str,
    ) -> None:
        url = (
            f'{self._org_url(org)}/_apis/serviceendpoint/endpoints/'
            f'{_q(service_connection_id)}?api-version=6.0-preview.4'
        )
        payload = [
            {
                'name': f'{org}-{team_project}',
                'projectReference': {'id': team_project_id, 'name': team_project},
            }
        ]
        await self.client.patch_async(url, data=payload)

    async def get_pipeline_id(self, org: str, team_project: str, pipeline: str) -> int:
        r"""Resolve a ``\folder\name`` pipeline path to its definition ID.

        Raises:
            NotFoundError: If no single pipeline matches
        """
        project_key = (org.upper(), team_project.upper())
        wanted = normalize_pipeline_path(pipeline).upper()

        if project_key not in self._pipeline_names:
            url = f'{self._project_url(org, team_project)}/_apis/build/definitions'
            definitions = await self.client.get_paginated_async(
                url, params={'queryOrder': 'definitionNameAscending'}
            )
            self._pipeline_names[project_key] = definitions

            for definition in definitions:
                path = normalize_pipeline_path(
                    definition.get('path') or '', definition['name']
                ).upper()
                key = project_key + (path,)
                if key in self._pipeline_ids:
                    self.logger.warning(
                        f'Multiple pipelines with the same path/name were found '
                        f'[org: {org} project: {team_project} pipeline: {path}]. '
                        f'Ignoring pipeline ID {definition["id"]}'
                    )
                    continue
                self._pipeline_ids[key] = int(definition['id'])

        pipeline_id = self._pipeline_ids.get(project_key + (wanted,))
        if pipeline_id is not None:
            return pipeline_id

        by_name = [
            d
            for d in self._pipeline_names[project_key]
            if d['name'].upper() == pipeline.upper()
        ]
        if len(by_name) == 1:
            return int(by_name[0]['id'])

        raise NotFoundError(f'Unable to find the pipeline {pipeline!r}')

    async def get_pipeline(
        self, org: str, team_project: str, pipeline_id: int
    ) -> PipelineDefinition:
        url = f'{self._project_url(org, team_project)}/_apis/build/definitions/{pipeline_id}'
        response = await self.client.get_async(url, params={'api-version': '6.0'})
        repository = response.data.get('repository', {})

        default_branch = repository.get('defaultBranch') or ''
        if default_branch.lower().startswith('refs/heads/'):
            default_branch = default_branch[len('refs/heads/'):]

        def _flag(value: Any) -> str:
            return 'null' if value is None else str(value).lower()

        return PipelineDefinition(
            default_branch=default_branch,
            clean=_flag(repository.get('clean')),
            checkout_submodules=_flag(repository.get('checkoutSubmodules')),
            triggers=response.data.get('triggers'),
        )

    async def change_pipeline_repo(
        self,
        org: str,
        team_project: str,
        pipeline_id: int,
        definition: PipelineDefinition,
        github_org: str,
        github_repo: str,
        service_connection_id: str,
    ) -> None:
        """Point a build definition at a GitHub repository."""
        url = f'{self._project_url(org, team_project)}/_apis/build/definitions/{pipeline_id}'
        response = await self.client.get_async(url, params={'api-version': '6.0'})

        full_name = f'{github_org}/{github_repo}'
        new_repository = {
            'properties': {
                'apiUrl': f'https://api.github.com/repos/{full_name}',
                'branchesUrl': f'https://api.github.com/repos/{full_name}/branches',
                'cloneUrl': f'https://github.com/{full_name}.git',
                'connectedServiceId': service_connection_id,
                'defaultBranch': definition.default_branch,
                'fullName': full_name,
                'manageUrl': f'https://github.com/{full_name}',
                'orgName': github_org,
                'refsUrl': f'https://api.github.com/repos/{full_name}/git/refs',
                'safeRepository': full_name,
                'shortName': github_repo,
                'reportBuildStatus': True,
            },
            'id': full_name,
            'type': 'GitHub',
            'name': full_name,
            'url': f'https://github.com/{full_name}.git',
            'defaultBranch': definition.default_branch,
            'clean': None if definition.clean == 'null' else definition.clean,
            'checkoutSubmodules': None
            if definition.checkout_submodules == 'null'
            else definition.checkout_submodules,
        }

        payload = dict(response.data)
        payload['repository'] = new_repository
        if definition.triggers is not None:
            payload['triggers'] = definition.triggers

        await self.client.put_async(f'{url}?api-version=6.0', data=payload)
