### stdlib imports
import os
import pathlib
import shutil
import tarfile
import time
import typing

### local imports
from . import (
    config as appConfig,
    discovery,
    errors,
    helper,
    hooks,
    jobs,
    lifecycle,
    model,
    notify,
    repository as resticRepository,
)

LATEST = "latest"

DATABASE_DUMP_PATTERNS = (
    "*_postgres_*.sql.gz",
    "*_mongo_*.archive.gz",
    "*_mysql_*.sql.gz",
)


class RollbackHandle:
    """The pending-rollback state of one app directory."""

    def __init__(self, original: pathlib.Path, aside: typing.Optional[pathlib.Path]):
        self.original = original
        self.aside = aside
        self.settled = False

    @classmethod
    def stage(cls, original: pathlib.Path, timestamp: str) -> "RollbackHandle":
        if not original.exists():
            return cls(original, None)

        helper.print_info("Backing up existing data...")
        aside = original.with_name(f"{original.name}.old.{timestamp}")
        try:
            original.rename(aside)
        except OSError as err:
            raise errors.RestoreError(
                "Could not move existing data aside", {"path": str(original), "error": str(err)}
            ) from err
        return cls(original, aside)

    def rollback(self) -> None:
        if self.settled:
            return

        # Drop whatever a partial extraction left behind
        if self.original.is_symlink() or self.original.is_file():
            self.original.unlink()
        elif self.original.exists():
            shutil.rmtree(self.original)

        if self.aside is not None:
            self.aside.rename(self.original)
            helper.print_info(f"Rolled back to the previous contents of {self.original}")
        self.settled = True

    def commit(self) -> None:
        if self.settled:
            return
        if self.aside is not None:
            shutil.rmtree(self.aside, ignore_errors=True)
        self.settled = True


def restore_order(settings: model.HostSettings, app_names: typing.Sequence[str]) -> list[tuple[int, str]]:
    """Pair apps with their restore priority, lowest first.

    `sorted` is stable, so equal priorities keep the incoming (discovery) order.
    """
    order = []
    for app_name in app_names:
        try:
            priority = appConfig.load_app_config(settings, app_name).restore.priority
        except errors.ConfigError:
            priority = model.RestoreSection().priority
        order.append((priority, app_name))
    return sorted(order, key=lambda entry: entry[0])


class RestoreOrchestrator:
    def __init__(
        self,
        settings: model.HostSettings,
        repository: typing.Optional[resticRepository.ResticRepository] = None,
        controller: typing.Optional[lifecycle.LifecycleController] = None,
        notifier: typing.Optional[notify.Notifier] = None,
        clock: typing.Callable[[], float] = time.monotonic,
    ):
        self.settings = settings
        self.repository = repository or resticRepository.ResticRepository(settings)
        self.controller = controller or lifecycle.LifecycleController(settings)
        self.notifier = notifier or notify.Notifier(settings, "restore")
        self.clock = clock

    @property
    def work_dir(self) -> pathlib.Path:
        # Unique per process so parallel invocations on one host don't collide
        return self.settings.restore_root / f"restore-temp-{os.getpid()}"

    def list_snapshots(self) -> list[model.Snapshot]:
        self.require_credentials()
        return self.repository.snapshots(host=self.settings.hostname_prefix)

    def require_credentials(self) -> None:
        if not self.settings.has_remote_credentials:
            raise errors.PreconditionError("B2/Restic credentials not set in environment")

    def resolve_snapshot(self, app_name: str, snapshot_ref: str) -> str:
        if snapshot_ref != LATEST:
            return snapshot_ref

        try:
            snapshot = self.repository.latest(app_name)
        except errors.RepositoryError as err:
            raise errors.RestoreError(f"Unable to query snapshots for {app_name}", err.details) from err

        if snapshot is None:
            raise errors.RestoreError(f"No snapshot found for {app_name}")

        helper.print_info(f"Using latest snapshot: {snapshot.label}")
        return snapshot.id

    def restore_app(self, app_name: str, snapshot_ref: str = LATEST, data_only: bool = False) -> bool:
        started = self.clock()

        helper.print_header(f"Restoring App: {app_name}")
        helper.print_info(f"Snapshot: {snapshot_ref}")
        helper.print_info(f"Host: {self.settings.hostname_prefix}")
        self.notifier.notify(app_name, f"🔄 Starting restore from snapshot `{snapshot_ref}`...", "info")

        try:
            self.require_credentials()
            app_config = appConfig.load_app_config(self.settings, app_name, missing_ok=True)
        except errors.BackupToolError as err:
            return self._fail(app_name, err)

        if not app_config.restore.enabled:
            helper.print_warning(f"Restore is disabled for {app_name} in {appConfig.CONFIG_FILE_NAME}")
            return True

        try:
            snapshot_id = self.resolve_snapshot(app_name, snapshot_ref)
            self._run_restore(app_name, app_config, snapshot_id, data_only)
        except errors.BackupToolError as err:
            return self._fail(app_name, err)

        duration = helper.format_duration(self.clock() - started)
        helper.print_header(f"Restore Complete: {app_name}")
        helper.print_info(f"Snapshot: {snapshot_id}")
        helper.print_info(f"Duration: {duration}")
        self.notifier.notify(
            app_name,
            f"✅ Restore completed\n\n**Snapshot:** `{snapshot_id}`\n**Duration:** {duration}",
            "success",
        )
        return True

    def _fail(self, app_name: str, err: errors.BackupToolError) -> bool:
        helper.print_failure(str(err))
        self.notifier.notify(app_name, f"❌ Restore failed: {err.message}", "error")
        return False

    def _run_restore(
        self,
        app_name: str,
        app_config: model.AppConfig,
        snapshot_id: str,
        data_only: bool,
    ) -> None:
        location = discovery.resolve_restore_location(self.settings, app_name, app_config)
        timestamp = helper.make_timestamp()

        stopped = False
        if data_only:
            helper.print_info("Data-only mode: skipping container stop")
        elif location.is_dir():
            stopped = self.controller.stop(app_name, app_config, location, enforce_policy=False)

        hooks.run_hook(
            "pre-restore",
            app_config.restore.pre_restore,
            self._hook_dir(app_name, location),
            self.settings.hook_timeout,
        )

        work_dir = self.work_dir
        try:
            fetched = self.fetch(app_name, snapshot_id, work_dir)
            archive = self.find_archive(fetched)
            helper.print_info(f"Found backup: {archive.name}")

            handle = self.extract(archive, location, timestamp)
            self.stage_database_dumps(fetched, location)
        except errors.BackupToolError:
            # The previous data is back in place; don't leave the app down
            if stopped:
                self._restart_previous(app_name, app_config, location)
            raise
        finally:
            helper.print_info("Cleaning up...")
            shutil.rmtree(work_dir, ignore_errors=True)

        hooks.run_hook(
            "post-restore",
            app_config.restore.post_restore,
            location,
            self.settings.hook_timeout,
        )

        if data_only:
            helper.print_info("Data-only mode: skipping container start")
        else:
            try:
                self.controller.start(app_name, app_config, location, enforce_policy=False)
            except errors.LifecycleError as err:
                if stopped:
                    if handle.aside is not None:
                        helper.print_warning(f"Previous data kept at {handle.aside}")
                    raise
                helper.print_warning(str(err))

        handle.commit()

    def _restart_previous(self, app_name: str, app_config: model.AppConfig, location: pathlib.Path) -> None:
        helper.print_info(f"Restarting {app_name} on its previous data...")
        try:
            self.controller.start(app_name, app_config, location, enforce_policy=False)
        except errors.LifecycleError as err:
            helper.print_warning(str(err))

    def _hook_dir(self, app_name: str, location: pathlib.Path) -> pathlib.Path:
        for candidate in (location, self.settings.apps_dir / app_name):
            if candidate.is_dir():
                return candidate
        return self.settings.apps_dir

    def fetch(self, app_name: str, snapshot_id: str, work_dir: pathlib.Path) -> pathlib.Path:
        """Download only the app's capture directory. Returns where it landed."""
        work_dir.mkdir(parents=True, exist_ok=True)
        source = self.settings.app_backup_dir(app_name)

        helper.print_info("Downloading backup from B2...")
        try:
            self.repository.restore(snapshot_id, work_dir, source)
        except errors.RepositoryError as err:
            raise errors.RestoreError("Failed to download from B2", err.details) from err

        return work_dir.joinpath(*source.parts[1:])

    def find_archive(self, fetched: pathlib.Path) -> pathlib.Path:
        # Archive names embed a sortable timestamp
        archives = sorted(fetched.glob("*_data_*.tar.gz"), key=lambda path: path.name, reverse=True)
        if not archives:
            raise errors.RestoreError("No backup archive found in snapshot")
        return archives[0]

    def extract(self, archive: pathlib.Path, location: pathlib.Path, timestamp: str) -> RollbackHandle:
        """Swap the archive's contents in for the app directory, or roll back."""
        try:
            with tarfile.open(archive, "r:gz") as tar:
                roots = {pathlib.PurePosixPath(member.name).parts[0] for member in tar.getmembers()}
        except (OSError, tarfile.TarError) as err:
            raise errors.RestoreError("Unreadable backup archive", {"error": str(err)}) from err

        # Nothing outside the app directory may be written
        if roots != {location.name}:
            raise errors.RestoreError(
                f"Archive is not rooted at {location.name}", {"roots": sorted(roots)}
            )

        handle = RollbackHandle.stage(location, timestamp)

        helper.print_info("Extracting backup archive...")
        try:
            location.parent.mkdir(parents=True, exist_ok=True)
            with tarfile.open(archive, "r:gz") as tar:
                tar.extractall(location.parent, filter="tar")
        except (OSError, tarfile.TarError) as err:
            handle.rollback()
            raise errors.RestoreError("Failed to extract backup", {"error": str(err)}) from err

        if not location.is_dir():
            handle.rollback()
            raise errors.RestoreError(f"Archive did not contain {location.name}")

        return handle

    def stage_database_dumps(self, fetched: pathlib.Path, location: pathlib.Path) -> list[pathlib.Path]:
        """Copy database dumps next to the app for an administrator to load."""
        staged = []
        for pattern in DATABASE_DUMP_PATTERNS:
            dumps = sorted(fetched.glob(pattern), key=lambda path: path.name, reverse=True)
            if not dumps:
                continue

            helper.print_info(f"Database backup found, copying {dumps[0].name} for manual restore")
            try:
                staged.append(pathlib.Path(shutil.copy2(dumps[0], location)))
            except OSError as err:
                helper.print_warning(f"Could not stage {dumps[0].name}: {err}")
        return staged

    def restore_all(self, snapshot_ref: str = LATEST, data_only: bool = False) -> model.RunSummary:
        started = self.clock()

        helper.print_header("Full Restore from B2")
        helper.print_info(f"Host: {self.settings.hostname_prefix}")
        self.notifier.notify("all", f"🔄 Starting full restore on {self.settings.hostname_prefix}", "info")

        summary = model.RunSummary()
        for _, app_name in restore_order(self.settings, discovery.discover_restore_apps(self.settings)):
            if self.restore_app(app_name, snapshot_ref, data_only):
                summary.succeeded.append(app_name)
            else:
                summary.failed.append(app_name)

        summary.duration = self.clock() - started
        jobs.report_summary(
            summary,
            self.notifier,
            "Full Restore Summary",
            "Full restore completed",
            "Restore completed with errors",
        )
        return summary
