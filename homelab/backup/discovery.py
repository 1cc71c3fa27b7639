# Stdlib imports
import pathlib
import typing

# Local imports
from . import config as appConfig, errors, helper, model

# Directories under the apps root that are never apps
IGNORED_DIRECTORIES = {"scripts"}


def resolve_location(
    settings: model.HostSettings, app_name: str, app_config: model.AppConfig
) -> pathlib.Path:
    """Resolve the directory an app lives in.

    Order: an existing `paths.install_path`, then the target of a symlink in
    the stacks directory, then the app's directory under the apps root. The
    result is never cached because the stacks symlinks can change between runs.
    """
    install_path = app_config.paths.install_path
    if install_path:
        candidate = helper.fully_qualified_path(install_path)
        if candidate.is_dir():
            return candidate

    stack_link = settings.stacks_dir / app_name
    if stack_link.is_symlink():
        return stack_link.resolve()

    return settings.apps_dir / app_name


def resolve_restore_location(
    settings: model.HostSettings, app_name: str, app_config: model.AppConfig
) -> pathlib.Path:
    # A configured install_path is the target even before it exists
    install_path = app_config.paths.install_path
    if install_path:
        return helper.fully_qualified_path(install_path)
    return resolve_location(settings, app_name, app_config)


def _candidates(settings: model.HostSettings) -> typing.Iterator[tuple[str, model.AppConfig]]:
    if not settings.apps_dir.is_dir():
        helper.print_warning(f"Apps directory not found: {settings.apps_dir}")
        return

    for app_dir in sorted(settings.apps_dir.iterdir()):
        if not app_dir.is_dir() or app_dir.name in IGNORED_DIRECTORIES:
            continue
        if not (app_dir / appConfig.CONFIG_FILE_NAME).is_file():
            continue
        if not appConfig.has_compose_file(app_dir):
            continue

        try:
            app_config = appConfig.load_app_config(settings, app_dir.name)
        except errors.ConfigError as err:
            helper.print_warning(f"Skipping {app_dir.name} - {err}")
            continue

        if not app_config.allows_host(settings.hostname):
            helper.print_info(f"Skipping {app_dir.name} - not allowed on {settings.hostname}")
            continue

        yield app_dir.name, app_config


def discover_backup_apps(settings: model.HostSettings) -> list[str]:
    return sorted(
        {name for name, app_config in _candidates(settings) if app_config.backup.enabled}
    )


def discover_restore_apps(settings: model.HostSettings) -> list[str]:
    # Restore does not care about backup.enabled
    return sorted({name for name, _ in _candidates(settings)})
