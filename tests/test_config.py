"""
Unit tests for per-app config and host settings (config.py, model.py).
"""

import pathlib

import pytest

from homelab.backup import config as appConfig
from homelab.backup.errors import ConfigError
from homelab.backup.model import AppConfig, HostSettings


class TestAppConfigDefaults:
    """Test defaults and the hot backup invariant."""

    def test_empty_document_uses_defaults(self, settings, make_app):
        make_app('vaultwarden', config={})

        app_config = appConfig.load_app_config(settings, 'vaultwarden')

        assert app_config.backup.enabled is True
        assert app_config.backup.paths == []
        assert app_config.backup.stop_during_backup is True
        assert app_config.hot_backup is False
        assert app_config.restore.enabled is True
        assert app_config.restore.priority == 50
        assert app_config.allowed_hosts == []
        assert app_config.should_stop is True

    def test_null_values_fall_back_to_defaults(self, settings, make_app):
        app_dir = make_app('mealie')
        (app_dir / 'config.yml').write_text(
            'backup:\n  paths: null\n  enabled: null\n  pre_backup: null\n'
            'restore:\n  priority: null\n'
            'allowed_hosts: null\n'
        )

        app_config = appConfig.load_app_config(settings, 'mealie')

        assert app_config.backup.paths == []
        assert app_config.backup.enabled is True
        assert app_config.backup.pre_backup is None
        assert app_config.restore.priority == 50
        assert app_config.allowed_hosts == []

    @pytest.mark.parametrize('stop_during_backup', [True, False])
    def test_hot_backup_forces_no_stop(self, stop_during_backup):
        app_config = AppConfig(
            hot_backup=True,
            backup={'stop_during_backup': stop_during_backup},
        )

        assert app_config.should_stop is False

    def test_stop_preference_respected_without_hot_backup(self):
        app_config = AppConfig(backup={'stop_during_backup': False})

        assert app_config.should_stop is False

    def test_allowed_hosts(self):
        assert AppConfig().allows_host('anything')
        assert AppConfig(allowed_hosts=['nas']).allows_host('nas')
        assert not AppConfig(allowed_hosts=['nas']).allows_host('pi')


class TestLoadAppConfig:
    """Test error handling when reading config documents."""

    def test_missing_document_raises(self, settings):
        with pytest.raises(ConfigError):
            appConfig.load_app_config(settings, 'ghost')

    def test_missing_document_allowed(self, settings):
        app_config = appConfig.load_app_config(settings, 'ghost', missing_ok=True)

        assert app_config == AppConfig()

    def test_invalid_values_raise(self, settings, make_app):
        make_app('broken', config={'restore': {'priority': 'first'}})

        with pytest.raises(ConfigError):
            appConfig.load_app_config(settings, 'broken')

    def test_non_mapping_document_raises(self, settings, make_app):
        app_dir = make_app('listy')
        (app_dir / 'config.yml').write_text('- a\n- b\n')

        with pytest.raises(ConfigError):
            appConfig.load_app_config(settings, 'listy')

    def test_has_compose_file(self, tmp_path):
        assert not appConfig.has_compose_file(tmp_path)

        (tmp_path / 'docker-compose.yaml').write_text('services: {}\n')

        assert appConfig.has_compose_file(tmp_path)


class TestHostSettings:
    """Test building host settings from the environment."""

    def test_from_env(self, tmp_path):
        settings = HostSettings.from_env({
            'APPS_DIR': str(tmp_path),
            'HOSTNAME': 'nas',
            'B2_BUCKET': 'bucket',
            'B2_ACCOUNT_ID': 'id',
            'B2_ACCOUNT_KEY': 'key',
            'RESTIC_PASSWORD': 'pw',
            'RESTIC_TIMEOUT': '60',
        })

        assert settings.apps_dir == tmp_path
        assert settings.hostname == 'nas'
        assert settings.hostname_prefix == 'nas'
        assert settings.restic_timeout == 60
        assert settings.has_remote_credentials
        assert settings.repository_url == 'b2:bucket:nas'

    def test_empty_values_are_unset(self, tmp_path):
        settings = HostSettings.from_env({
            'APPS_DIR': str(tmp_path),
            'HOSTNAME': 'nas',
            'HOSTNAME_PREFIX': 'prod-nas',
            'B2_BUCKET': 'bucket',
            'B2_ACCOUNT_ID': '',
        })

        assert settings.hostname_prefix == 'prod-nas'
        assert settings.b2_account_id is None
        assert not settings.has_remote_credentials

    def test_settings_are_immutable(self, settings):
        with pytest.raises(Exception):
            settings.hostname = 'other'

    def test_restore_root_defaults_to_backup_dir(self, settings):
        assert settings.restore_root == settings.backup_dir

    def test_env_file_overrides_environment(self, tmp_path, monkeypatch):
        monkeypatch.setenv('APPS_DIR', str(tmp_path))
        monkeypatch.setenv('HOSTNAME_PREFIX', 'from-env')
        env_file = tmp_path / 'backup.env'
        env_file.write_text('HOSTNAME_PREFIX=from-file\nB2_BUCKET=bucket\n')

        settings = appConfig.load_host_settings(env_file)

        assert settings.hostname_prefix == 'from-file'
        assert settings.b2_bucket == 'bucket'

    def test_missing_env_file_is_ignored(self, tmp_path, monkeypatch):
        monkeypatch.setenv('APPS_DIR', str(tmp_path))

        settings = appConfig.load_host_settings(tmp_path / 'nope.env')

        assert settings.apps_dir == pathlib.Path(tmp_path)
