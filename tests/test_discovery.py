"""
Unit tests for app discovery and location resolution (discovery.py).
"""

from homelab.backup import discovery
from homelab.backup.model import AppConfig


class TestDiscoverBackupApps:
    """Test backup eligibility rules."""

    def test_sorted_eligible_apps(self, settings, make_app):
        make_app('vaultwarden')
        make_app('immich')
        make_app('mealie')

        assert discovery.discover_backup_apps(settings) == ['immich', 'mealie', 'vaultwarden']

    def test_requires_config_document(self, settings, make_app):
        make_app('unconfigured', with_config=False)
        make_app('mealie')

        assert discovery.discover_backup_apps(settings) == ['mealie']

    def test_requires_compose_descriptor(self, settings, make_app):
        make_app('no-compose', compose=False)
        make_app('mealie')

        assert discovery.discover_backup_apps(settings) == ['mealie']

    def test_accepts_yaml_extension_compose(self, settings, make_app):
        app_dir = make_app('gitea', compose=False)
        (app_dir / 'docker-compose.yaml').write_text('services: {}\n')

        assert discovery.discover_backup_apps(settings) == ['gitea']

    def test_skips_backup_disabled(self, settings, make_app):
        make_app('scratch', config={'backup': {'enabled': False}})
        make_app('mealie')

        assert discovery.discover_backup_apps(settings) == ['mealie']

    def test_skips_other_hosts(self, settings, make_app):
        make_app('pihole', config={'allowed_hosts': ['pi-1', 'pi-2']})
        make_app('traefik', config={'allowed_hosts': ['testhost']})

        assert discovery.discover_backup_apps(settings) == ['traefik']

    def test_ignores_scripts_directory_and_files(self, settings, make_app):
        make_app('scripts')
        (settings.apps_dir / 'README.md').write_text('hello')
        make_app('mealie')

        assert discovery.discover_backup_apps(settings) == ['mealie']

    def test_invalid_config_is_skipped(self, settings, make_app):
        make_app('broken', config={'hot_backup': 'sometimes'})
        make_app('mealie')

        assert discovery.discover_backup_apps(settings) == ['mealie']

    def test_missing_apps_dir(self, settings):
        missing = settings.model_copy(update={'apps_dir': settings.apps_dir / 'nope'})

        assert discovery.discover_backup_apps(missing) == []

    def test_discovery_is_idempotent(self, settings, make_app):
        make_app('mealie')
        make_app('immich')

        first = discovery.discover_backup_apps(settings)

        assert discovery.discover_backup_apps(settings) == first


class TestDiscoverRestoreApps:
    """Test restore eligibility rules."""

    def test_restore_ignores_backup_enabled(self, settings, make_app):
        make_app('scratch', config={'backup': {'enabled': False}})
        make_app('mealie')

        assert discovery.discover_restore_apps(settings) == ['mealie', 'scratch']

    def test_restore_respects_allowed_hosts(self, settings, make_app):
        make_app('pihole', config={'allowed_hosts': ['pi-1']})
        make_app('mealie')

        assert discovery.discover_restore_apps(settings) == ['mealie']


class TestResolveLocation:
    """Test the install_path > stacks symlink > apps dir resolution order."""

    def test_default_location(self, settings, make_app):
        make_app('mealie')

        location = discovery.resolve_location(settings, 'mealie', AppConfig())

        assert location == settings.apps_dir / 'mealie'

    def test_install_path_override(self, settings, tmp_path):
        install = tmp_path / 'srv' / 'mealie'
        install.mkdir(parents=True)
        app_config = AppConfig(paths={'install_path': str(install)})

        assert discovery.resolve_location(settings, 'mealie', app_config) == install

    def test_missing_install_path_falls_through(self, settings):
        app_config = AppConfig(paths={'install_path': '/does/not/exist'})

        location = discovery.resolve_location(settings, 'mealie', app_config)

        assert location == settings.apps_dir / 'mealie'

    def test_stacks_symlink(self, settings, tmp_path):
        target = tmp_path / 'real' / 'immich'
        target.mkdir(parents=True)
        (settings.stacks_dir / 'immich').symlink_to(target)

        location = discovery.resolve_location(settings, 'immich', AppConfig())

        assert location == target.resolve()

    def test_location_not_cached(self, settings, tmp_path):
        first = tmp_path / 'one'
        second = tmp_path / 'two'
        first.mkdir()
        second.mkdir()
        link = settings.stacks_dir / 'immich'
        link.symlink_to(first)

        assert discovery.resolve_location(settings, 'immich', AppConfig()) == first.resolve()

        link.unlink()
        link.symlink_to(second)

        assert discovery.resolve_location(settings, 'immich', AppConfig()) == second.resolve()


class TestResolveRestoreLocation:
    """Restore targets the configured install_path even when it is absent."""

    def test_missing_install_path_is_the_target(self, settings, tmp_path):
        install = tmp_path / 'srv' / 'foo-app'
        app_config = AppConfig(paths={'install_path': str(install)})

        assert discovery.resolve_restore_location(settings, 'foo', app_config) == install

    def test_without_install_path_matches_backup(self, settings, make_app):
        make_app('mealie')

        location = discovery.resolve_restore_location(settings, 'mealie', AppConfig())

        assert location == settings.apps_dir / 'mealie'
