# Stdlib imports
import os
import pathlib

# Vendor imports
import dotenv
import pydantic
import yaml

# Local imports
from . import errors, model

CONFIG_FILE_NAME = "config.yml"
COMPOSE_FILE_NAMES = ("docker-compose.yml", "docker-compose.yaml")

# Environment file sourced by the scheduled jobs on every host
default_env_path = pathlib.Path("/opt/scripts/backup.env")


def config_path(settings: model.HostSettings, app_name: str) -> pathlib.Path:
    return settings.apps_dir / app_name / CONFIG_FILE_NAME


def has_compose_file(directory: pathlib.Path) -> bool:
    return any((directory / name).is_file() for name in COMPOSE_FILE_NAMES)


# Return the config values in an app's config file
def load_app_config(
    settings: model.HostSettings,
    app_name: str,
    missing_ok: bool = False,
) -> model.AppConfig:
    path = config_path(settings, app_name)

    if not path.is_file():
        if missing_ok:
            return model.AppConfig()
        raise errors.ConfigError(f"No config document for '{app_name}'", {"path": str(path)})

    # Open and decode the config file; an empty document means "all defaults"
    try:
        with path.open("r") as handle:
            parsed = yaml.load(handle, yaml.SafeLoader) or {}
    except yaml.YAMLError as err:
        raise errors.ConfigError(f"Unreadable config document for '{app_name}'", {"error": str(err)}) from err

    if not isinstance(parsed, dict):
        raise errors.ConfigError(f"Config document for '{app_name}' is not a mapping")

    try:
        return model.AppConfig(**parsed)
    except pydantic.ValidationError as err:
        raise errors.ConfigError(f"Invalid config document for '{app_name}'", {"error": str(err)}) from err


def load_host_settings(env_file: pathlib.Path = default_env_path) -> model.HostSettings:
    """Build the host settings once, from the process environment and the env file."""
    env = dict(os.environ)

    # Values in the env file win, the same as sourcing it would
    env_file = env_file.expanduser()
    if env_file.is_file():
        env.update({k: v for k, v in dotenv.dotenv_values(env_file).items() if v is not None})

    return model.HostSettings.from_env(env)
