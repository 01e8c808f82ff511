"""Configuration loading."""

from .config import (
    AdoInstanceConfig,
    Config,
    GithubInstanceConfig,
    LoggingConfig,
    MigrationConfig,
    PollingConfig,
)

__all__ = [
    'AdoInstanceConfig',
    'Config',
    'GithubInstanceConfig',
    'LoggingConfig',
    'MigrationConfig',
    'PollingConfig',
]
