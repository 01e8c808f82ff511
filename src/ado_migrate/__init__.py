"""ADO Migration Tool

Migrates git repositories, teams and pipeline bindings from Azure DevOps
organizations to a GitHub organization using GitHub's repository import API.
"""

__version__ = '0.1.0'

from .cli import main

__all__ = ['main']
