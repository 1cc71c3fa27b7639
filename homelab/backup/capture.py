### stdlib imports
import fnmatch
import os
import pathlib
import re
import tarfile
import typing

### local imports
from . import errors, helper, model, runtime as composeRuntime

# Always excluded, on top of the app's own `backup.exclude`
BUILTIN_EXCLUDES = ("*.log", "*.tmp", "*.pid")

# Local artifacts; anything matching that isn't from the current run is pruned
LOCAL_ARTIFACT_PATTERNS = ("*.tar.gz", "*.sql.gz", "*.archive.gz")

# Out-of-tree paths are stored under this directory inside the app folder
EXTERNAL_ARCNAME = ".external"


class DatabaseEngine(typing.NamedTuple):
    name: str
    label: str
    signature: re.Pattern
    services: tuple[str, ...]
    argv: tuple[str, ...]
    extension: str


# Probed in this order; each engine family produces at most one dump
DATABASE_ENGINES = (
    DatabaseEngine(
        "postgres",
        "PostgreSQL",
        re.compile(r"postgres"),
        ("postgres",),
        ("pg_dumpall", "-U", "postgres"),
        "sql.gz",
    ),
    DatabaseEngine(
        "mongo",
        "MongoDB",
        re.compile(r"mongo"),
        ("mongo",),
        ("mongodump", "--archive"),
        "archive.gz",
    ),
    DatabaseEngine(
        "mysql",
        "MariaDB/MySQL",
        re.compile(r"mariadb|mysql"),
        ("mariadb", "mysql"),
        ("mysqldump", "--all-databases", "-u", "root"),
        "sql.gz",
    ),
)


def resolve_backup_paths(app_config: model.AppConfig, location: pathlib.Path) -> list[pathlib.Path]:
    """Resolve `backup.paths` against the app location, defaulting to `data`."""
    paths: list[pathlib.Path] = []
    for entry in app_config.backup.paths:
        if not entry:
            continue
        if entry.startswith("/"):
            paths.append(pathlib.Path(os.path.normpath(entry)))
        else:
            # Covers both "./rel" and bare "rel"
            paths.append(pathlib.Path(os.path.normpath(location / entry)))

    return paths or [location / "data"]


def exclude_patterns(app_config: model.AppConfig) -> list[str]:
    patterns = [p for p in app_config.backup.exclude if p]
    return patterns + [p for p in BUILTIN_EXCLUDES if p not in patterns]


def _exclude_filter(patterns: typing.Sequence[str]):
    def apply(info: tarfile.TarInfo) -> typing.Optional[tarfile.TarInfo]:
        # Unanchored, like `tar --exclude`: any trailing run of path components
        parts = info.name.split("/")
        suffixes = ["/".join(parts[i:]) for i in range(len(parts))]
        if any(fnmatch.fnmatch(suffix, p) for suffix in suffixes for p in patterns):
            return None
        return info

    return apply


def archive_members(
    paths: typing.Sequence[pathlib.Path], location: pathlib.Path
) -> dict[str, pathlib.Path]:
    """Map archive names to source paths, all rooted at the app directory name."""
    if location in paths:
        return {location.name: location}

    members: dict[str, pathlib.Path] = {}

    # The compose descriptor and config always travel with the data
    for entry in sorted(location.iterdir()):
        if entry.is_file():
            members[f"{location.name}/{entry.name}"] = entry

    for path in paths:
        if not path.exists():
            helper.print_warning(f"Backup path not found, skipping: {path}")
            continue
        if location in path.parents:
            arcname = pathlib.PurePosixPath(location.name, *path.relative_to(location).parts)
        else:
            arcname = pathlib.PurePosixPath(
                location.name, EXTERNAL_ARCNAME, *path.relative_to(path.anchor).parts
            )
        members.setdefault(str(arcname), path)

    return members


class CaptureEngine:
    def __init__(
        self,
        settings: model.HostSettings,
        runtime: typing.Optional[composeRuntime.ComposeRuntime] = None,
    ):
        self.settings = settings
        self.runtime = runtime or composeRuntime.ComposeRuntime()

    def data_archive_path(self, app_name: str, timestamp: str) -> pathlib.Path:
        return self.settings.app_backup_dir(app_name) / f"{app_name}_data_{timestamp}.tar.gz"

    def capture_data(
        self,
        app_name: str,
        app_config: model.AppConfig,
        location: pathlib.Path,
        timestamp: str,
    ) -> pathlib.Path:
        helper.print_info(f"Backing up data for {app_name}...")

        archive = self.data_archive_path(app_name, timestamp)
        archive.parent.mkdir(parents=True, exist_ok=True)

        try:
            members = archive_members(resolve_backup_paths(app_config, location), location)
            self._write_archive(archive, members, exclude_patterns(app_config))
        except (OSError, tarfile.TarError) as err:
            archive.unlink(missing_ok=True)
            raise errors.CaptureError(
                f"Failed to create backup archive for {app_name}", {"error": str(err)}
            ) from err

        if not archive.is_file() or archive.stat().st_size == 0:
            archive.unlink(missing_ok=True)
            raise errors.CaptureError(f"Backup file empty or missing: {archive}")

        helper.print_info(f"Created: {archive} ({helper.human_readable(archive.stat().st_size)})")
        return archive

    def _write_archive(
        self,
        archive: pathlib.Path,
        members: dict[str, pathlib.Path],
        patterns: typing.Sequence[str],
    ) -> None:
        with tarfile.open(archive, "w:gz") as tar:
            for arcname, source in members.items():
                tar.add(source, arcname=arcname, filter=_exclude_filter(patterns))

    def capture_database(self, app_name: str, location: pathlib.Path, timestamp: str) -> list[pathlib.Path]:
        """Dump every detected database engine. Failures only warn."""
        if not location.is_dir():
            return []

        backup_dir = self.settings.app_backup_dir(app_name)
        backup_dir.mkdir(parents=True, exist_ok=True)

        listing = self.runtime.ps(location)
        written: list[pathlib.Path] = []

        for engine in DATABASE_ENGINES:
            if not engine.signature.search(listing):
                continue

            helper.print_info(f"Backing up {engine.label} database...")
            container_id = self.runtime.container_id(location, engine.services)
            if not container_id:
                helper.print_warning(f"{engine.label} container not found")
                continue

            destination = backup_dir / f"{app_name}_{engine.name}_{timestamp}.{engine.extension}"
            try:
                self.runtime.dump(container_id, engine.argv, destination)
            except errors.ContainerRuntimeError as err:
                helper.print_warning(f"{engine.label} backup failed: {err}")
                destination.unlink(missing_ok=True)
                continue

            written.append(destination)

        return written

    def prune_local(self, app_name: str, timestamp: str) -> list[pathlib.Path]:
        """Keep only the current generation; the remote holds the history."""
        backup_dir = self.settings.app_backup_dir(app_name)
        helper.print_info(f"Cleaning up old backups in {backup_dir}...")

        removed: list[pathlib.Path] = []
        for pattern in LOCAL_ARTIFACT_PATTERNS:
            for path in backup_dir.glob(pattern):
                if f"_{timestamp}" in path.name:
                    continue
                path.unlink(missing_ok=True)
                removed.append(path)

        return removed
