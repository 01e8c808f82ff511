"""Tests for target naming rules."""

import pytest

from ado_migrate.utils.naming import (
    MigrationKey,
    admins_team_name,
    maintainers_team_name,
    migration_key,
    migration_log_file_name,
    replace_invalid_characters,
    target_repo_name,
)


class TestNaming:
    """Test naming helpers."""

    @pytest.mark.parametrize(
        'value,expected',
        [
            ('simple', 'simple'),
            ('with space', 'with-space'),
            ('keep.dots_and-dashes', 'keep.dots_and-dashes'),
            ('a  &  b', 'a-b'),
            ('ünïcode', '-n-code'),
            ('', ''),
        ],
    )
    def test_replace_invalid_characters(self, value, expected):
        assert replace_invalid_characters(value) == expected

    def test_target_repo_name(self):
        assert target_repo_name('Team Project', 'My Repo') == 'Team-Project-My-Repo'

    def test_target_repo_name_is_deterministic(self):
        assert target_repo_name('tp', 'repo') == target_repo_name('tp', 'repo')

    def test_team_names(self):
        assert maintainers_team_name('Team Project') == 'Team-Project-Maintainers'
        assert admins_team_name('Team Project') == 'Team-Project-Admins'

    def test_migration_key(self):
        key = migration_key('org', 'tp-repo')

        assert key == MigrationKey('org', 'tp-repo')
        assert str(key) == 'org/tp-repo'
        assert key != migration_key('other-org', 'tp-repo')

    def test_migration_log_file_name(self):
        assert migration_log_file_name('gh-org', 'tp-repo') == (
            'migration-log-gh-org-tp-repo.log'
        )
