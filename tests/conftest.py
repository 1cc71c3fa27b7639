"""
Shared pytest fixtures for homelab-backup tests.

Provides:
- Host settings rooted in a temporary directory
- A factory for app directories with config.yml and docker-compose.yml
- Mocked docker compose runtime, restic repository and notifier
"""

import pathlib
from unittest.mock import MagicMock

import pytest
import yaml

from homelab.backup.model import HostSettings
from homelab.backup.notify import Notifier
from homelab.backup.repository import ResticRepository
from homelab.backup.runtime import ComposeRuntime


CREDENTIALS = {
    'b2_bucket': 'homelab-bucket',
    'b2_account_id': 'key-id',
    'b2_account_key': 'key-secret',
    'restic_password': 'hunter2',
}


@pytest.fixture
def settings(tmp_path):
    """Host settings without remote credentials."""
    for name in ('apps', 'backups', 'stacks'):
        (tmp_path / name).mkdir()

    return HostSettings(
        apps_dir=tmp_path / 'apps',
        backup_dir=tmp_path / 'backups',
        stacks_dir=tmp_path / 'stacks',
        hostname='testhost',
        hostname_prefix='testhost',
        startup_retries=2,
        startup_interval=0,
        secrets_wrapper=tmp_path / 'missing-wrapper',
    )


@pytest.fixture
def remote_settings(settings):
    """Host settings with all four remote credentials present."""
    return settings.model_copy(update=CREDENTIALS)


@pytest.fixture
def make_app(settings):
    """
    Create an app directory under the apps root.

    Returns a callable: make_app(name, config=None, compose=True, files=None)
    where files maps relative paths to text contents.
    """
    def _make_app(name, config=None, compose=True, files=None, with_config=True):
        app_dir = settings.apps_dir / name
        app_dir.mkdir(parents=True, exist_ok=True)

        if with_config:
            (app_dir / 'config.yml').write_text(yaml.safe_dump(config or {}))
        if compose:
            (app_dir / 'docker-compose.yml').write_text('services:\n  app:\n    image: busybox\n')

        for relative, contents in (files or {}).items():
            target = app_dir / relative
            target.parent.mkdir(parents=True, exist_ok=True)
            target.write_text(contents)

        return app_dir

    return _make_app


@pytest.fixture
def runtime():
    """Mocked docker compose runtime with nothing running."""
    mock = MagicMock(spec=ComposeRuntime)
    mock.ps.return_value = ''
    mock.is_running.return_value = False
    mock.container_id.return_value = None
    return mock


@pytest.fixture
def repository():
    """Mocked restic repository that is already initialized."""
    mock = MagicMock(spec=ResticRepository)
    mock.is_initialized.return_value = True
    mock.backup.return_value = '1a2b3c4d'
    mock.latest.return_value = None
    return mock


@pytest.fixture
def notifier():
    return MagicMock(spec=Notifier)


def tree_contents(root: pathlib.Path) -> dict:
    """Map every path under root to its bytes (None for directories)."""
    return {
        str(path.relative_to(root)): (None if path.is_dir() else path.read_bytes())
        for path in sorted(root.rglob('*'))
    }


@pytest.fixture
def snapshot_tree():
    return tree_contents
