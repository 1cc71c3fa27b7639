"""
Unit tests for remote sync and retention (sync.py).
"""

import pytest

from homelab.backup.errors import RepositoryError, SyncError
from homelab.backup.model import DEFAULT_RETENTION
from homelab.backup.sync import RetentionSyncer, SyncStatus


class TestRetentionSyncer:
    def test_skipped_without_credentials(self, settings, repository):
        result = RetentionSyncer(settings, repository).sync('mealie')

        assert result.status is SyncStatus.SKIPPED
        repository.backup.assert_not_called()

    @pytest.mark.parametrize('missing', ['b2_bucket', 'b2_account_id', 'b2_account_key', 'restic_password'])
    def test_any_missing_credential_skips(self, remote_settings, repository, missing):
        partial = remote_settings.model_copy(update={missing: None})

        result = RetentionSyncer(partial, repository).sync('mealie')

        assert result.status is SyncStatus.SKIPPED

    def test_full_sync(self, remote_settings, repository):
        result = RetentionSyncer(remote_settings, repository).sync('mealie')

        assert result.status is SyncStatus.SYNCED
        assert result.snapshot_id == '1a2b3c4d'
        repository.init.assert_not_called()
        repository.unlock.assert_called_once_with()
        repository.backup.assert_called_once_with(
            remote_settings.backup_dir / 'mealie', ['mealie', 'homelab-apps']
        )
        repository.forget.assert_called_once_with(['mealie'], DEFAULT_RETENTION, prune=True)

    def test_initializes_unreachable_repository(self, remote_settings, repository):
        repository.is_initialized.return_value = False

        RetentionSyncer(remote_settings, repository).sync('mealie')

        repository.init.assert_called_once_with()

    def test_init_failure_is_fatal(self, remote_settings, repository):
        repository.is_initialized.return_value = False
        repository.init.side_effect = RepositoryError('restic init failed')

        with pytest.raises(SyncError):
            RetentionSyncer(remote_settings, repository).sync('mealie')

        repository.backup.assert_not_called()

    def test_unlock_errors_ignored(self, remote_settings, repository):
        repository.unlock.side_effect = RepositoryError('no locks to remove')

        result = RetentionSyncer(remote_settings, repository).sync('mealie')

        assert result.status is SyncStatus.SYNCED

    def test_push_failure_is_fatal(self, remote_settings, repository):
        repository.backup.side_effect = RepositoryError('restic backup timed out after 1800s')

        with pytest.raises(SyncError):
            RetentionSyncer(remote_settings, repository).sync('mealie')

        repository.forget.assert_not_called()

    def test_prune_failure_is_not_fatal(self, remote_settings, repository):
        repository.forget.side_effect = RepositoryError('restic forget failed')

        result = RetentionSyncer(remote_settings, repository).sync('mealie')

        assert result.status is SyncStatus.SYNCED

    def test_fleet_tag_is_configurable(self, remote_settings, repository):
        tagged = remote_settings.model_copy(update={'fleet_tag': 'fleet'})

        RetentionSyncer(tagged, repository).sync('mealie')

        assert repository.backup.call_args.args[1] == ['mealie', 'fleet']
