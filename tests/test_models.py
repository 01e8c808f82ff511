"""Tests for inventory and migration models."""

import pytest

from ado_migrate.api.exceptions import UnknownMigrationStateError
from ado_migrate.models import (
    Inventory,
    MigrationLogReference,
    MigrationState,
    Organization,
    Repository,
    TeamProject,
)


def _inventory(*repos):
    """Build an inventory from (org, team project, repo) triples."""
    orgs = {}
    for org, team_project, name in repos:
        orgs.setdefault(org, {}).setdefault(team_project, []).append(
            Repository(org=org, team_project=team_project, name=name)
        )

    return Inventory(
        organizations=[
            Organization(
                name=org,
                team_projects=[
                    TeamProject(org=org, name=tp, repositories=tp_repos)
                    for tp, tp_repos in team_projects.items()
                ],
            )
            for org, team_projects in orgs.items()
        ]
    )


class TestMigrationState:
    """Test migration state classification."""

    @pytest.mark.parametrize(
        'raw_state', ['QUEUED', 'PENDING_VALIDATION', 'IN_PROGRESS']
    )
    def test_pending_states(self, raw_state):
        state = MigrationState.classify(raw_state)

        assert state.is_pending
        assert not state.is_terminal

    def test_succeeded(self):
        state = MigrationState.classify('SUCCEEDED')

        assert state.is_succeeded
        assert state.is_terminal
        assert not state.is_failed

    @pytest.mark.parametrize('raw_state', ['FAILED', 'FAILED_VALIDATION'])
    def test_failed_states(self, raw_state):
        state = MigrationState.classify(raw_state)

        assert state.is_failed
        assert state.is_terminal
        assert not state.is_succeeded

    def test_classify_normalizes_case_and_whitespace(self):
        assert MigrationState.classify(' in_progress ') == MigrationState.IN_PROGRESS
        assert MigrationState.classify('Succeeded') == MigrationState.SUCCEEDED

    @pytest.mark.parametrize('raw_state', ['UNKNOWN', '', None])
    def test_unknown_state_raises(self, raw_state):
        with pytest.raises(UnknownMigrationStateError):
            MigrationState.classify(raw_state)


class TestMigrationLogReference:
    """Test migration log reference."""

    def test_empty_url_is_unavailable(self):
        assert not MigrationLogReference(migration_id='RM_1').is_available
        assert not MigrationLogReference(
            migration_id='RM_1', migration_log_url=''
        ).is_available

    def test_populated_url_is_available(self):
        reference = MigrationLogReference(
            migration_id='RM_1', migration_log_url='https://example.com/log'
        )

        assert reference.is_available


class TestInventory:
    """Test inventory snapshot."""

    def test_repositories_in_discovery_order(self):
        inventory = _inventory(
            ('org1', 'tp1', 'a'), ('org1', 'tp2', 'b'), ('org2', 'tp1', 'c')
        )

        assert [r.name for r in inventory.repositories()] == ['a', 'b', 'c']
        assert inventory.repo_count == 3

    def test_target_name(self):
        repo = Repository(org='org', team_project='Team Project', name='My Repo')

        assert repo.target_name == 'Team-Project-My-Repo'
        assert str(repo.coordinates) == 'org/Team Project/My Repo'

    def test_orgs_missing_credential(self):
        inventory = Inventory(
            organizations=[
                Organization(name='with', integration_credential_id='sc-1'),
                Organization(name='without'),
            ]
        )

        assert inventory.orgs_missing_credential() == ['without']

    def test_no_duplicates(self):
        inventory = _inventory(('org', 'tp', 'a'), ('org', 'tp', 'b'))

        assert inventory.duplicate_target_names() == []

    def test_duplicate_target_names(self):
        inventory = _inventory(('org', 'A B', 'c'), ('org', 'A', 'B c'))

        duplicates = inventory.duplicate_target_names()

        assert len(duplicates) == 1
        assert duplicates[0].target_name == 'A-B-c'
        message = duplicates[0].describe()
        assert message.startswith('DUPLICATE REPO NAME: A-B-c')
        assert 'org/A B/c' in message
        assert 'org/A/B c' in message

    def test_duplicates_independent_of_order(self):
        first = _inventory(('org', 'A B', 'c'), ('org', 'A', 'B c'))
        second = _inventory(('org', 'A', 'B c'), ('org', 'A B', 'c'))

        assert first.duplicate_target_names() == second.duplicate_target_names()

    def test_duplicate_names_are_case_sensitive(self):
        inventory = _inventory(('org', 'tp', 'Repo'), ('org', 'tp', 'repo'))

        assert inventory.duplicate_target_names() == []

    def test_models_are_frozen(self):
        repo = Repository(org='org', team_project='tp', name='a')

        with pytest.raises(Exception):
            repo.name = 'b'
