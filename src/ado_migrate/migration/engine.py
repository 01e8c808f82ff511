"""Migration engine - main entry point for migration operations."""

import asyncio
from typing import List, Optional, Tuple

from loguru import logger

from ..api.ado import AdoApi
from ..api.client import ApiClientFactory
from ..api.github import GithubApi
from ..api.retry import RetryPolicy
from ..config.config import Config
from ..inventory.inspector import InventoryService
from ..models import Inventory
from .executor import StepExecutor
from .orchestrator import MigrationOrchestrator, RunReport
from .steps import PlanFlags, Step

ADO_PROFILE_URL = (
    'https://app.vssps.visualstudio.com/_apis/profile/profiles/me'
    '?api-version=5.0-preview.1'
)


class MigrationEngine:
    """Wires configuration, API clients and the orchestrator together."""

    def __init__(self, config: Config, flags: Optional[PlanFlags] = None):
        """Initialize migration engine.

        Args:
            config: Migration configuration
            flags: Enabled options, read from the configuration when omitted
        """
        self.config = config
        self.logger = logger.bind(component='MigrationEngine')

        migration = config.migration
        self.flags = flags or PlanFlags(
            create_teams=migration.create_teams,
            link_idp_groups=migration.link_idp_groups,
            lock_source_repos=migration.lock_source_repos,
            disable_source_repos=migration.disable_source_repos,
            rewire_pipelines=migration.rewire_pipelines,
            download_migration_logs=migration.download_migration_logs,
        )

        # Initialize API clients
        self.ado_client = ApiClientFactory.create_ado_client(config.source)
        self.github_client = ApiClientFactory.create_github_client(config.target)
        self.ado_api = AdoApi(self.ado_client)
        self.github_api = GithubApi(self.github_client, config.target.graphql_url)

        self.cancel_event = asyncio.Event()
        self.retry_policy = RetryPolicy(
            retry_interval=config.polling.retry_interval,
            max_attempts=config.polling.retry_attempts,
            poll_interval=config.polling.migration_poll_interval,
            cancel_event=self.cancel_event,
        )

        self.inventory_service = InventoryService(
            self.ado_api,
            config.target.org,
            org_filter=migration.org_filter,
            team_project_filter=migration.team_project_filter,
        )
        self.executor = StepExecutor(
            self.ado_api,
            self.github_api,
            self.retry_policy,
            github_org=config.target.org,
            ado_pat=config.source.pat,
            github_token=config.target.token,
            ado_server_url=config.source.url,
            target_repo_visibility=migration.target_repo_visibility,
            log_dir=migration.log_dir,
        )
        self.orchestrator = MigrationOrchestrator(
            self.inventory_service,
            self.executor,
            self.flags,
            sequential=migration.sequential,
            max_concurrent_waits=migration.max_concurrent_waits,
            repo_list=migration.repo_list,
        )

    async def migrate(self) -> RunReport:
        """Discover and migrate every selected repository.

        Returns:
            Run report
        """
        self.logger.info('Starting Azure DevOps to GitHub migration')

        try:
            report = await self.orchestrator.execute_migration()
            self.logger.info('Migration run finished')
            return report

        except Exception as e:
            self.logger.error(f'Migration failed: {e}')
            raise
        finally:
            self.close()

    async def dry_run(self) -> Tuple[Inventory, List[Step]]:
        """Discover repositories and plan steps without changing anything.

        Returns:
            Discovered inventory and the planned steps
        """
        self.logger.info('Starting migration dry run')

        try:
            inventory = await self.orchestrator.discover()
            self.orchestrator.warn_duplicate_target_names(inventory)
            steps = self.orchestrator.plan(inventory)

            self.logger.info(f'Dry run planned {len(steps)} steps')
            return inventory, steps

        except Exception as e:
            self.logger.error(f'Dry run failed: {e}')
            raise
        finally:
            self.close()

    def test_connectivity(self) -> Tuple[bool, bool]:
        """Test connectivity to Azure DevOps and GitHub.

        Returns:
            Whether each platform is reachable with the configured credentials
        """
        self.logger.info('Testing connectivity to Azure DevOps and GitHub')

        ado_ok = self.ado_client.test_connection(ADO_PROFILE_URL)
        github_ok = self.github_client.test_connection('/user')

        if ado_ok and github_ok:
            self.logger.info('Connectivity tests passed')
        return ado_ok, github_ok

    def abort(self) -> None:
        """Stop every in-flight wait at its next sleep."""
        self.logger.warning('Abort requested')
        self.cancel_event.set()

    def close(self) -> None:
        self.ado_client.close()
        self.github_client.close()
