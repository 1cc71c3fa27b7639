# Stdlib imports
import json
import os
import pathlib
import re
import typing

# Vendor imports
import pydantic
import sh

# Local imports
from . import command, errors, model


def get_retention_arguments(retention: model.BackupRetention) -> list[str]:
    args: list[str] = []

    if retention.keep_last:
        args += ["--keep-last", str(retention.keep_last)]

    if retention.keep_within:
        args += ["--keep-within", retention.keep_within]

    if retention.keep_hourly:
        args += ["--keep-hourly", str(retention.keep_hourly)]

    if retention.keep_daily:
        args += ["--keep-daily", str(retention.keep_daily)]

    if retention.keep_weekly:
        args += ["--keep-weekly", str(retention.keep_weekly)]

    if retention.keep_monthly:
        args += ["--keep-monthly", str(retention.keep_monthly)]

    if retention.keep_yearly:
        args += ["--keep-yearly", str(retention.keep_yearly)]

    return args


def get_tag_arguments(tags: typing.Sequence[str]) -> list[str]:
    args: list[str] = []
    for tag in tags:
        args += ["--tag", tag]
    return args


class ResticRepository:
    def __init__(
        self,
        settings: model.HostSettings,
        restic: typing.Optional[sh.Command] = None,
    ):
        self.settings = settings
        self.restic = restic or command.restic

    @property
    def url(self) -> str:
        return self.settings.repository_url

    def get_execution_env(self) -> dict[str, str]:
        settings = self.settings
        return {
            **dict(os.environ),
            "RESTIC_REPOSITORY": self.url,
            "RESTIC_PASSWORD": settings.restic_password or "",
            "B2_ACCOUNT_ID": settings.b2_account_id or "",
            "B2_ACCOUNT_KEY": settings.b2_account_key or "",
            # Keep restic's scratch files on the backup disk
            "TMPDIR": str(settings.backup_dir),
        }

    def _run(self, *args: str, timeout: typing.Optional[float] = None) -> str:
        try:
            return str(self.restic(*args, _env=self.get_execution_env(), _timeout=timeout))
        except sh.TimeoutException as err:
            raise errors.RepositoryError(f"restic {args[0]} timed out after {timeout}s") from err
        except sh.ErrorReturnCode as err:
            raise errors.RepositoryError(
                f"restic {args[0]} failed", {"exit_code": err.exit_code}
            ) from err

    def _run_politely(self, args: list[str], timeout: typing.Optional[float], okCodes: list[int] = [0]):
        try:
            return command.run_command_politely(
                self.restic, args, self.get_execution_env(), okCodes, timeout
            )
        except sh.TimeoutException as err:
            raise errors.RepositoryError(f"restic {args[0]} timed out after {timeout}s") from err
        except sh.ErrorReturnCode as err:
            raise errors.RepositoryError(
                f"restic {args[0]} failed", {"exit_code": err.exit_code}
            ) from err

    def is_initialized(self) -> bool:
        try:
            self._run("snapshots", "--quiet", timeout=self.settings.probe_timeout)
        except errors.RepositoryError:
            return False
        return True

    def init(self) -> None:
        self._run("init")

    def unlock(self) -> None:
        self._run("unlock", timeout=self.settings.lock_timeout)

    def backup(self, path: pathlib.Path, tags: typing.Sequence[str]) -> typing.Optional[str]:
        """Push one directory as a snapshot. Returns the saved snapshot id, if reported."""
        args = [
            "backup",
            str(path),
            *get_tag_arguments(tags),
            "--host",
            self.settings.hostname_prefix,
            "--exclude-caches",
        ]

        # Exit code 3 means some source files could not be read
        proc = self._run_politely(args, self.settings.restic_timeout, [0, 3])

        match = re.search(r"snapshot (\w+) saved", proc.stdout.decode())
        return match.group(1) if match else None

    def forget(self, tags: typing.Sequence[str], retention: model.BackupRetention, prune: bool = True) -> None:
        args = ["forget", *get_tag_arguments(tags), *get_retention_arguments(retention)]
        if prune:
            args.append("--prune")
        self._run_politely(args, None)

    def snapshots(
        self,
        tags: typing.Sequence[str] = (),
        host: typing.Optional[str] = None,
    ) -> list[model.Snapshot]:
        args = ["snapshots", "--json", *get_tag_arguments(tags)]
        if host:
            args += ["--host", host]

        output = self._run(*args, timeout=self.settings.probe_timeout)

        try:
            entries = json.loads(output) or []
            return [model.Snapshot(**entry) for entry in entries]
        except (ValueError, TypeError, pydantic.ValidationError) as err:
            raise errors.RepositoryError("Unable to parse the snapshot list") from err

    def latest(self, tag: str) -> typing.Optional[model.Snapshot]:
        found = self.snapshots([tag], self.settings.hostname_prefix)
        if not found:
            return None
        return max(found, key=lambda snapshot: snapshot.time)

    def restore(self, snapshot_id: str, target: pathlib.Path, include: pathlib.Path) -> None:
        args = [
            "restore",
            snapshot_id,
            "--target",
            str(target),
            "--include",
            str(include),
        ]
        self._run_politely(args, self.settings.restic_timeout)
