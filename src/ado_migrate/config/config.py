"""Configuration management for the Azure DevOps to GitHub migration tool."""

from typing import Optional, Dict, Any, List
from pathlib import Path
import os

from pydantic import BaseModel, Field, validator
import yaml
from dotenv import load_dotenv

VALID_VISIBILITIES = ('private', 'public', 'internal')


class AdoInstanceConfig(BaseModel):
    """Configuration for the Azure DevOps source."""

    url: str = Field(
        default='https://dev.azure.com', description='Azure DevOps server URL'
    )
    pat: Optional[str] = Field(default=None, description='Personal access token')
    timeout: int = Field(default=30, description='Request timeout in seconds')

    @validator('url')
    def validate_url(cls, v):
        """Validate Azure DevOps URL format."""
        if not v.startswith(('http://', 'https://')):
            raise ValueError('URL must start with http:// or https://')
        return v.rstrip('/')

    @validator('timeout')
    def validate_timeout(cls, v):
        if v <= 0:
            raise ValueError('Timeout must be positive')
        return v


class GithubInstanceConfig(BaseModel):
    """Configuration for the GitHub target organization."""

    api_url: str = Field(
        default='https://api.github.com', description='GitHub API URL'
    )
    token: str = Field(..., description='Personal access token')
    org: str = Field(..., description='Target GitHub organization')
    timeout: int = Field(default=30, description='Request timeout in seconds')

    @validator('api_url')
    def validate_api_url(cls, v):
        """Validate GitHub API URL format."""
        if not v.startswith(('http://', 'https://')):
            raise ValueError('URL must start with http:// or https://')
        return v.rstrip('/')

    @validator('token', 'org')
    def validate_not_blank(cls, v):
        if not v or not v.strip():
            raise ValueError('Value must not be empty')
        return v.strip()

    @property
    def graphql_url(self) -> str:
        return f'{self.api_url}/graphql'


class MigrationConfig(BaseModel):
    """Migration-specific configuration."""

    create_teams: bool = Field(
        default=False, description='Create Maintainers and Admins teams'
    )
    link_idp_groups: bool = Field(
        default=False, description='Link teams to identity provider groups'
    )
    lock_source_repos: bool = Field(
        default=False, description='Lock Azure DevOps repos before migrating'
    )
    disable_source_repos: bool = Field(
        default=False, description='Disable Azure DevOps repos after migrating'
    )
    rewire_pipelines: bool = Field(
        default=False, description='Point Azure Pipelines at the GitHub repos'
    )
    download_migration_logs: bool = Field(
        default=False, description='Download migration logs after migrating'
    )

    sequential: bool = Field(
        default=False, description='Migrate one repository at a time'
    )
    org_filter: Optional[str] = Field(
        default=None, description='Only migrate this Azure DevOps organization'
    )
    team_project_filter: Optional[str] = Field(
        default=None, description='Only migrate this team project'
    )
    repo_list: Optional[str] = Field(
        default=None, description='CSV file listing the repositories to migrate'
    )

    target_repo_visibility: str = Field(
        default='private', description='Visibility of migrated repositories'
    )
    max_concurrent_waits: int = Field(
        default=20, description='Migrations waited on concurrently'
    )
    log_dir: str = Field(
        default='.', description='Directory for downloaded migration logs'
    )

    dry_run: bool = Field(default=False, description='Perform dry run without changes')

    @validator('target_repo_visibility')
    def validate_visibility(cls, v):
        """Validate target repository visibility."""
        if v.lower() not in VALID_VISIBILITIES:
            raise ValueError(f'Visibility must be one of: {list(VALID_VISIBILITIES)}')
        return v.lower()

    @validator('max_concurrent_waits')
    def validate_max_concurrent_waits(cls, v):
        """Validate concurrency limit is positive."""
        if v <= 0:
            raise ValueError('Max concurrent waits must be positive')
        return v


class PollingConfig(BaseModel):
    """Timing of migration status polls and bounded retries."""

    migration_poll_interval: float = Field(
        default=10.0, description='Seconds between migration status polls'
    )
    retry_interval: float = Field(
        default=4.0, description='Seconds between bounded retries'
    )
    retry_attempts: int = Field(
        default=6, description='Total calls made by a bounded retry'
    )

    @validator('migration_poll_interval', 'retry_interval')
    def validate_interval(cls, v):
        if v < 0:
            raise ValueError('Intervals must not be negative')
        return v

    @validator('retry_attempts')
    def validate_retry_attempts(cls, v):
        if v <= 0:
            raise ValueError('Retry attempts must be positive')
        return v


class LoggingConfig(BaseModel):
    """Logging configuration."""

    level: str = Field(default='INFO', description='Log level')
    file: Optional[str] = Field(default=None, description='Log file path')
    format: Optional[str] = Field(default=None, description='Console log format')

    @validator('level')
    def validate_log_level(cls, v):
        """Validate log level."""
        valid_levels = ['DEBUG', 'INFO', 'WARNING', 'ERROR', 'CRITICAL']
        if v.upper() not in valid_levels:
            raise ValueError(f'Log level must be one of: {valid_levels}')
        return v.upper()


class Config(BaseModel):
    """Main configuration class for the migration tool."""

    source: AdoInstanceConfig = Field(
        default_factory=AdoInstanceConfig, description='Azure DevOps source'
    )
    target: GithubInstanceConfig = Field(..., description='GitHub target')
    migration: MigrationConfig = Field(
        default_factory=MigrationConfig, description='Migration settings'
    )
    polling: PollingConfig = Field(
        default_factory=PollingConfig, description='Polling settings'
    )
    logging: LoggingConfig = Field(
        default_factory=LoggingConfig, description='Logging settings'
    )

    class Config:
        """Pydantic configuration."""

        extra = 'forbid'  # Don't allow extra fields

    @classmethod
    def from_file(cls, config_path: str) -> 'Config':
        """Load configuration from YAML file."""
        config_file = Path(config_path)

        if not config_file.exists():
            raise FileNotFoundError(f'Configuration file not found: {config_path}')

        with open(config_file, 'r', encoding='utf-8') as f:
            config_data = yaml.safe_load(f) or {}

        return cls(**config_data)

    @classmethod
    def from_env(cls) -> 'Config':
        """Load configuration from environment variables."""
        # Load .env file if it exists
        load_dotenv()

        config_data = {
            'source': {
                'url': os.getenv('ADO_SERVER_URL'),
                'pat': os.getenv('ADO_PAT'),
            },
            'target': {
                'api_url': os.getenv('TARGET_API_URL'),
                'token': os.getenv('GH_PAT'),
                'org': os.getenv('GITHUB_ORG'),
            },
            'logging': {
                'level': os.getenv('LOG_LEVEL'),
                'file': os.getenv('LOG_FILE'),
            },
        }

        config_data = cls._remove_none_values(config_data)
        return cls(**config_data)

    @staticmethod
    def _remove_none_values(data: Dict[str, Any]) -> Dict[str, Any]:
        """Recursively remove None values from dictionary."""
        if isinstance(data, dict):
            return {
                k: Config._remove_none_values(v)
                for k, v in data.items()
                if v is not None
            }
        return data

    @property
    def secrets(self) -> List[str]:
        """Credentials that must never reach the logs."""
        return [s for s in (self.source.pat, self.target.token) if s]

    def to_file(self, config_path: str) -> None:
        """Save configuration to YAML file."""
        config_file = Path(config_path)
        config_file.parent.mkdir(parents=True, exist_ok=True)

        with open(config_file, 'w', encoding='utf-8') as f:
            yaml.dump(
                self.dict(), f, default_flow_style=False, indent=2, sort_keys=False
            )

    @staticmethod
    def create_template(output_path: str) -> None:
        """Create a configuration template file."""
        template_config = {
            'source': {
                'url': 'https://dev.azure.com',
                'pat': 'your-azure-devops-personal-access-token',
                'timeout': 30,
            },
            'target': {
                'api_url': 'https://api.github.com',
                'token': 'your-github-personal-access-token',
                'org': 'your-github-org',
                'timeout': 30,
            },
            'migration': {
                'create_teams': True,
                'link_idp_groups': False,
                'lock_source_repos': True,
                'disable_source_repos': True,
                'rewire_pipelines': True,
                'download_migration_logs': True,
                'sequential': False,
                'org_filter': None,
                'team_project_filter': None,
                'repo_list': None,
                'target_repo_visibility': 'private',
                'max_concurrent_waits': 20,
                'log_dir': 'migration-logs',
                'dry_run': False,
            },
            'polling': {
                'migration_poll_interval': 10,
                'retry_interval': 4,
                'retry_attempts': 6,
            },
            'logging': {
                'level': 'INFO',
                'file': 'migration.log',
            },
        }

        config_file = Path(output_path)
        config_file.parent.mkdir(parents=True, exist_ok=True)

        with open(config_file, 'w', encoding='utf-8') as f:
            yaml.dump(
                template_config, f, default_flow_style=False, indent=2, sort_keys=False
            )
