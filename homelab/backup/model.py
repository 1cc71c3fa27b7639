### stdlib imports
import datetime
import pathlib
import socket
import typing

### vendor imports
import pydantic

### local imports
from . import helper


class ConfigSection(pydantic.BaseModel):
    # A YAML `null` means "not set"; drop it so the field default applies
    @pydantic.model_validator(mode="before")
    @classmethod
    def drop_nulls(cls, data: typing.Any) -> typing.Any:
        if isinstance(data, dict):
            return {k: v for k, v in data.items() if v is not None}
        return data


class BackupSection(ConfigSection):
    enabled: bool = True
    paths: list[str] = []
    exclude: list[str] = []
    stop_during_backup: bool = True
    pre_backup: typing.Optional[str] = None
    post_backup: typing.Optional[str] = None


class RestoreSection(ConfigSection):
    enabled: bool = True
    priority: int = 50
    pre_restore: typing.Optional[str] = None
    post_restore: typing.Optional[str] = None


class PathsSection(ConfigSection):
    install_path: typing.Optional[str] = None


class SecretsSection(ConfigSection):
    infisical_path: typing.Optional[str] = None


class AppConfig(ConfigSection):
    backup: BackupSection = BackupSection()
    restore: RestoreSection = RestoreSection()
    paths: PathsSection = PathsSection()
    secrets: SecretsSection = SecretsSection()
    hot_backup: bool = False
    allowed_hosts: list[str] = []

    @property
    def should_stop(self) -> bool:
        """Hot backup always wins over the stop preference."""
        return not self.hot_backup and self.backup.stop_during_backup

    def allows_host(self, hostname: str) -> bool:
        return not self.allowed_hosts or hostname in self.allowed_hosts


class BackupRetention(pydantic.BaseModel):
    keep_last: typing.Optional[int] = None
    keep_within: typing.Optional[str] = None

    keep_hourly: typing.Optional[int] = None
    keep_daily: typing.Optional[int] = None
    keep_weekly: typing.Optional[int] = None
    keep_monthly: typing.Optional[int] = None
    keep_yearly: typing.Optional[int] = None


# Applied per app tag after every successful push
DEFAULT_RETENTION = BackupRetention(keep_daily=7, keep_weekly=4, keep_monthly=3)


class Snapshot(pydantic.BaseModel):
    id: str
    short_id: str = ""
    time: datetime.datetime
    tags: list[str] = []
    hostname: str = ""
    paths: list[str] = []

    @pydantic.field_validator("time", mode="before")
    @classmethod
    def parse_time(cls, value: typing.Any) -> typing.Any:
        if isinstance(value, str):
            return helper.parse_timestamp(value)
        return value

    @pydantic.field_validator("tags", "paths", mode="before")
    @classmethod
    def null_list(cls, value: typing.Any) -> typing.Any:
        return value or []

    @property
    def label(self) -> str:
        return self.short_id or self.id[:8]


class HostSettings(pydantic.BaseModel):
    model_config = pydantic.ConfigDict(frozen=True)

    apps_dir: pathlib.Path
    backup_dir: pathlib.Path = pathlib.Path("/opt/backups")
    stacks_dir: pathlib.Path = pathlib.Path("/opt/stacks")
    restore_dir: typing.Optional[pathlib.Path] = None

    hostname: str
    hostname_prefix: str

    b2_bucket: typing.Optional[str] = None
    b2_account_id: typing.Optional[str] = None
    b2_account_key: typing.Optional[str] = None
    restic_password: typing.Optional[str] = None
    webhook_url: typing.Optional[str] = None
    fleet_tag: str = "homelab-apps"

    restic_timeout: float = 1800
    probe_timeout: float = 60
    lock_timeout: float = 300
    stop_timeout: int = 30
    startup_retries: int = 20
    startup_interval: float = 3
    hook_timeout: float = 600
    secrets_wrapper: pathlib.Path = pathlib.Path("/usr/local/bin/infisical-run")

    @property
    def has_remote_credentials(self) -> bool:
        return all(
            [
                self.b2_bucket,
                self.b2_account_id,
                self.b2_account_key,
                self.restic_password,
            ]
        )

    @property
    def repository_url(self) -> str:
        return f"b2:{self.b2_bucket}:{self.hostname_prefix}"

    @property
    def restore_root(self) -> pathlib.Path:
        return self.restore_dir or self.backup_dir

    def app_backup_dir(self, app_name: str) -> pathlib.Path:
        return self.backup_dir / app_name

    @classmethod
    def from_env(cls, env: typing.Mapping[str, str]) -> "HostSettings":
        # Map of environment variables to settings fields
        names = {
            "APPS_DIR": "apps_dir",
            "BACKUP_DIR": "backup_dir",
            "STACKS_DIR": "stacks_dir",
            "RESTORE_DIR": "restore_dir",
            "HOSTNAME": "hostname",
            "HOSTNAME_PREFIX": "hostname_prefix",
            "B2_BUCKET": "b2_bucket",
            "B2_ACCOUNT_ID": "b2_account_id",
            "B2_ACCOUNT_KEY": "b2_account_key",
            "RESTIC_PASSWORD": "restic_password",
            "DISCORD_WEBHOOK_URL": "webhook_url",
            "FLEET_TAG": "fleet_tag",
            "RESTIC_TIMEOUT": "restic_timeout",
            "PROBE_TIMEOUT": "probe_timeout",
            "LOCK_TIMEOUT": "lock_timeout",
            "STOP_TIMEOUT": "stop_timeout",
            "STARTUP_RETRIES": "startup_retries",
            "STARTUP_INTERVAL": "startup_interval",
            "HOOK_TIMEOUT": "hook_timeout",
            "SECRETS_WRAPPER": "secrets_wrapper",
        }
        values: dict[str, typing.Any] = {
            field: env[var] for var, field in names.items() if env.get(var)
        }

        values.setdefault("apps_dir", pathlib.Path.cwd())
        values.setdefault("hostname", socket.gethostname())
        values.setdefault("hostname_prefix", values["hostname"])

        return cls(**values)


class RunSummary(pydantic.BaseModel):
    succeeded: list[str] = []
    failed: list[str] = []
    duration: float = 0

    @property
    def ok(self) -> bool:
        return not self.failed
