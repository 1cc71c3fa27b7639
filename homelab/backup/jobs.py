### stdlib imports
import pathlib
import time
import typing

### local imports
from . import (
    capture as captureEngine,
    config as appConfig,
    discovery,
    errors,
    helper,
    hooks,
    lifecycle,
    model,
    notify,
    sync,
)


def report_summary(
    summary: model.RunSummary,
    notifier: notify.Notifier,
    title: str,
    success_message: str,
    failure_message: str,
) -> None:
    duration = helper.format_duration(summary.duration)

    helper.print_header(title)
    helper.print_info(f"Duration: {duration}")
    helper.print_info(f"Successful: {len(summary.succeeded)}")
    helper.print_info(f"Failed: {len(summary.failed)}")

    if summary.failed:
        helper.print_failure(f"Failed apps: {' '.join(summary.failed)}")
        notifier.notify(
            "all",
            f"⚠️ {failure_message}\n\n**Success:** {len(summary.succeeded)}\n"
            f"**Failed:** {len(summary.failed)}\n**Duration:** {duration}",
            "warning",
        )
        return

    notifier.notify(
        "all",
        f"✅ {success_message}\n\n**Apps:** {len(summary.succeeded)}\n**Duration:** {duration}",
        "success",
    )


class BackupRunner:
    def __init__(
        self,
        settings: model.HostSettings,
        controller: typing.Optional[lifecycle.LifecycleController] = None,
        capture: typing.Optional[captureEngine.CaptureEngine] = None,
        syncer: typing.Optional[sync.RetentionSyncer] = None,
        notifier: typing.Optional[notify.Notifier] = None,
        clock: typing.Callable[[], float] = time.monotonic,
    ):
        self.settings = settings
        self.controller = controller or lifecycle.LifecycleController(settings)
        self.capture = capture or captureEngine.CaptureEngine(settings)
        self.syncer = syncer or sync.RetentionSyncer(settings)
        self.notifier = notifier or notify.Notifier(settings, "backup")
        self.clock = clock

    def list_apps(self) -> list[tuple[str, pathlib.Path, model.AppConfig]]:
        listing = []
        for app_name in discovery.discover_backup_apps(self.settings):
            app_config = appConfig.load_app_config(self.settings, app_name)
            location = discovery.resolve_location(self.settings, app_name, app_config)
            listing.append((app_name, location, app_config))
        return listing

    def backup_app(self, app_name: str) -> bool:
        helper.print_header(f"Backing up: {app_name}")

        try:
            app_config = appConfig.load_app_config(self.settings, app_name)
        except errors.ConfigError as err:
            helper.print_failure(str(err))
            self.notifier.notify(app_name, "❌ Backup failed", "error")
            return False

        location = discovery.resolve_location(self.settings, app_name, app_config)
        if not location.is_dir():
            helper.print_failure(f"App directory not found: {location}")
            self.notifier.notify(app_name, "❌ Backup failed", "error")
            return False

        helper.print_info(f"Compose directory: {location}")
        self.settings.app_backup_dir(app_name).mkdir(parents=True, exist_ok=True)
        timestamp = helper.make_timestamp()

        hooks.run_hook("pre-backup", app_config.backup.pre_backup, location, self.settings.hook_timeout)

        stopped = self.controller.stop(app_name, app_config, location)
        captured = False
        try:
            self.capture.capture_database(app_name, location, timestamp)
            try:
                self.capture.capture_data(app_name, app_config, location, timestamp)
                captured = True
            except errors.CaptureError as err:
                helper.print_failure(str(err))

            hooks.run_hook("post-backup", app_config.backup.post_backup, location, self.settings.hook_timeout)
        finally:
            restarted = self._restart(app_name, app_config, location, stopped)

        success = captured and restarted

        if captured:
            self.capture.prune_local(app_name, timestamp)
            try:
                self.syncer.sync(app_name)
            except errors.SyncError as err:
                helper.print_failure(str(err))
                success = False
        else:
            helper.print_warning("No fresh capture, skipping remote sync")

        if success:
            helper.print_info(f"✅ Backup completed for {app_name}")
            self.notifier.notify(app_name, "✅ Backup completed successfully", "success")
        else:
            helper.print_failure(f"❌ Backup failed for {app_name}")
            self.notifier.notify(app_name, "❌ Backup failed", "error")

        return success

    def _restart(
        self,
        app_name: str,
        app_config: model.AppConfig,
        location: pathlib.Path,
        stopped: bool,
    ) -> bool:
        # Only bring back what we took down
        if not stopped:
            return True
        try:
            self.controller.start(app_name, app_config, location)
        except errors.LifecycleError as err:
            helper.print_failure(str(err))
            return False
        return True

    def backup_all(self) -> model.RunSummary:
        started = self.clock()

        helper.print_header("Backing up ALL apps")
        helper.print_info(f"Host: {self.settings.hostname_prefix}")
        helper.print_info(f"Apps directory: {self.settings.apps_dir}")
        self.notifier.notify(
            "all", f"🚀 Starting backup of all apps on {self.settings.hostname_prefix}", "info"
        )

        summary = model.RunSummary()
        for app_name in discovery.discover_backup_apps(self.settings):
            if self.backup_app(app_name):
                summary.succeeded.append(app_name)
            else:
                summary.failed.append(app_name)

        summary.duration = self.clock() - started
        report_summary(
            summary,
            self.notifier,
            "Backup Summary",
            "All backups completed",
            "Backup completed with errors",
        )
        return summary
