"""Data models for the migration inventory."""

from .repository import AdoRepository, Pipeline, RepoCoordinates, Repository
from .project import TeamProject
from .organization import DuplicateTargetName, Inventory, Organization
from .migration import MigrationJob, MigrationLogReference, MigrationState

__all__ = [
    'AdoRepository',
    'Pipeline',
    'RepoCoordinates',
    'Repository',
    'TeamProject',
    'Organization',
    'Inventory',
    'DuplicateTargetName',
    'MigrationJob',
    'MigrationLogReference',
    'MigrationState',
]
