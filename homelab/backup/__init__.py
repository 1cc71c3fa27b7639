# Stdlib imports
import pathlib
import typing

# Vendor imports
import apscheduler.executors.pool
import apscheduler.schedulers.blocking
import apscheduler.triggers.cron
import rich.table
import typer

# Local imports
from . import command, config as applicationConfig, errors, helper, jobs, model, restore


# Initialize the typer apps, one per console script
backup_cli = typer.Typer(add_completion=False)
restore_cli = typer.Typer(add_completion=False)


def _print_help(ctx: typer.Context, settings: model.HostSettings) -> None:
    typer.echo(ctx.get_help())
    helper.print()
    helper.print_kv("Host", settings.hostname_prefix)
    helper.print_kv("Apps", str(settings.apps_dir))
    helper.print_kv(
        "Repository",
        settings.repository_url if settings.b2_bucket else "<not set>",
    )


def _require_tools(**tools) -> None:
    try:
        command.require(**tools)
    except errors.PreconditionError as err:
        helper.print_error(str(err))


def run_daemon(runner: jobs.BackupRunner, schedule: str) -> None:
    """Run `backup all` on a cron schedule until interrupted."""
    helper.print_line(f"Scheduling fleet backup: {schedule}")
    scheduler = apscheduler.schedulers.blocking.BlockingScheduler(
        executors={
            "default": apscheduler.executors.pool.ThreadPoolExecutor(1)
        },
        job_defaults={
            "misfire_grace_time": None,
            "coalesce": True,
        },
    )

    try:
        trigger = apscheduler.triggers.cron.CronTrigger.from_crontab(schedule)
    except ValueError as err:
        helper.print_error(f"Error: Invalid schedule '{schedule}': {err}")

    scheduler.add_job(id="backup-all", trigger=trigger, func=runner.backup_all)

    try:
        helper.print_warning("Starting scheduler...")
        scheduler.start()
    except KeyboardInterrupt:
        helper.print_warning("Scheduler stopping...")


@backup_cli.command(
    help="Back up one app, or every discovered app. TARGET is an app name, 'all', 'list' or 'help'."
)
def cli_backup(
    ctx: typer.Context,
    target: str = typer.Argument(
        "help", help="App name, or one of 'all', 'list', 'help'."
    ),
    env_file: pathlib.Path = typer.Option(
        applicationConfig.default_env_path,
        "--env-file",
        "-e",
        envvar="BACKUP_ENV_FILE",
        help="Environment file with credentials and host settings.",
    ),
    schedule: typing.Optional[str] = typer.Option(
        None,
        "--schedule",
        "-s",
        help="Crontab expression. With 'all', run as a daemon and back up the fleet on this schedule.",
    ),
):
    settings = applicationConfig.load_host_settings(env_file)
    runner = jobs.BackupRunner(settings)

    if target in ("help", "--help", "-h"):
        _print_help(ctx, settings)
        return

    if target == "list":
        helper.print_header("Discovered Apps")
        helper.print_info(f"Apps directory: {settings.apps_dir}")
        helper.print()
        listing = runner.list_apps()
        for app_name, location, app_config in listing:
            status = " (hot backup)" if app_config.hot_backup else ""
            helper.print(f"  📦 {app_name}")
            helper.print(f"     → {location}{status}")
        helper.print()
        helper.print_info(f"Total apps: {len(listing)}")
        return

    if schedule and target != "all":
        helper.print_error("Error: --schedule can only be used with 'all'")

    _require_tools(docker=command.docker)
    if settings.has_remote_credentials:
        _require_tools(restic=command.restic)

    if target == "all":
        if schedule:
            run_daemon(runner, schedule)
            return
        summary = runner.backup_all()
        if not summary.ok:
            raise typer.Exit(code=1)
        return

    if not (settings.apps_dir / target).is_dir():
        helper.print_failure(f"App not found: {target}")
        helper.print_info("Use 'list' to see available apps")
        raise typer.Exit(code=1)

    if not runner.backup_app(target):
        raise typer.Exit(code=1)


@restore_cli.command(
    help="Restore one app, or every discovered app in priority order. TARGET is an app name, 'all', 'list' or 'help'."
)
def cli_restore(
    ctx: typer.Context,
    target: str = typer.Argument(
        "help", help="App name, or one of 'all', 'list', 'help'."
    ),
    snapshot: str = typer.Argument(
        restore.LATEST, help="Snapshot ID to restore. 'latest' picks the newest snapshot of each app."
    ),
    data_only: bool = typer.Option(
        False,
        "--data-only/",
        help="Only restore data, don't stop or start containers.",
    ),
    env_file: pathlib.Path = typer.Option(
        applicationConfig.default_env_path,
        "--env-file",
        "-e",
        envvar="BACKUP_ENV_FILE",
        help="Environment file with credentials and host settings.",
    ),
):
    settings = applicationConfig.load_host_settings(env_file)
    orchestrator = restore.RestoreOrchestrator(settings)

    if target in ("help", "--help", "-h"):
        _print_help(ctx, settings)
        return

    if not settings.has_remote_credentials:
        helper.print_error("B2/Restic credentials not set in environment")

    _require_tools(restic=command.restic)
    if not data_only:
        _require_tools(docker=command.docker)

    if target == "list":
        helper.print_header("Available Snapshots")
        helper.print_info(f"Repository: {settings.repository_url}")
        try:
            snapshots = orchestrator.list_snapshots()
        except errors.BackupToolError as err:
            helper.print_error(f"Failed to list snapshots: {err}")

        table = rich.table.Table("ID", "Time", "Host", "Tags", "Paths")
        for entry in sorted(snapshots, key=lambda s: s.time):
            table.add_row(
                entry.label,
                entry.time.strftime("%Y-%m-%d %H:%M:%S"),
                entry.hostname,
                ", ".join(entry.tags),
                "\n".join(entry.paths),
            )
        helper.print(table)
        return

    if target == "all":
        summary = orchestrator.restore_all(snapshot, data_only)
        if not summary.ok:
            raise typer.Exit(code=1)
        return

    if not orchestrator.restore_app(target, snapshot, data_only):
        raise typer.Exit(code=1)
