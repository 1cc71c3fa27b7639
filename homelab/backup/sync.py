### stdlib imports
import enum
import typing

### local imports
from . import errors, helper, model, repository as resticRepository


class SyncStatus(enum.Enum):
    SYNCED = "synced"
    SKIPPED = "skipped"


class SyncResult(typing.NamedTuple):
    status: SyncStatus
    snapshot_id: typing.Optional[str] = None


class RetentionSyncer:
    def __init__(
        self,
        settings: model.HostSettings,
        repository: typing.Optional[resticRepository.ResticRepository] = None,
        retention: model.BackupRetention = model.DEFAULT_RETENTION,
    ):
        self.settings = settings
        self.repository = repository or resticRepository.ResticRepository(settings)
        self.retention = retention

    def sync(self, app_name: str) -> SyncResult:
        """Push, then apply retention. Raises SyncError if the push itself fails."""
        if not self.settings.has_remote_credentials:
            helper.print_warning("B2 credentials not set, skipping remote sync")
            return SyncResult(SyncStatus.SKIPPED)

        helper.print_info(f"Syncing to Backblaze B2: {self.settings.b2_bucket}")
        self.ensure_initialized()
        self.clear_stale_locks()

        helper.print_info("Running restic backup...")
        try:
            snapshot_id = self.repository.backup(
                self.settings.app_backup_dir(app_name),
                [app_name, self.settings.fleet_tag],
            )
        except errors.RepositoryError as err:
            raise errors.SyncError(f"Restic backup failed for {app_name}", err.details) from err

        self.apply_retention(app_name)

        helper.print_info(f"B2 sync completed for {app_name}")
        return SyncResult(SyncStatus.SYNCED, snapshot_id)

    def ensure_initialized(self) -> None:
        if self.repository.is_initialized():
            return

        helper.print_info("Initializing restic repository...")
        try:
            self.repository.init()
        except errors.RepositoryError as err:
            raise errors.SyncError("Failed to initialize restic repository", err.details) from err

    def clear_stale_locks(self) -> None:
        # A previous aborted run may have left an exclusive lock behind
        try:
            self.repository.unlock()
        except errors.RepositoryError:
            pass

    def apply_retention(self, app_name: str) -> bool:
        helper.print_info("Applying retention policy...")
        try:
            self.repository.forget([app_name], self.retention, prune=True)
        except errors.RepositoryError as err:
            helper.print_warning(f"Retention policy failed (non-fatal): {err}")
            return False
        return True
