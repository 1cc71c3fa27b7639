# Stdlib imports
import datetime
import pathlib
import re
import sys
import typing

# Vendor imports
import humanize
import rich


TIMESTAMP_FORMAT = r"%Y%m%d_%H%M%S"


def fix_timestamp(t: str) -> str:
    # restic reports nanoseconds; datetime only accepts microseconds
    return re.sub(
        r":(\d+)\.(\d+)",
        lambda match: f":{match.group(1)}.{match.group(2)[:6]}",
        t,
    )


def parse_timestamp(t: str) -> datetime.datetime:
    return datetime.datetime.fromisoformat(fix_timestamp(t).replace("Z", "+00:00"))


def make_timestamp(moment: typing.Optional[datetime.datetime] = None) -> str:
    return (moment or datetime.datetime.now()).strftime(TIMESTAMP_FORMAT)


def _now() -> str:
    return datetime.datetime.now().strftime("%Y-%m-%d %H:%M:%S")


def print(*args, file=None):
    rich.print(*args, file=file)


def print_line(*args, file=None):
    print("-" * 8, *args, file=file)


def print_info(message: str):
    print(f"[green]\\[INFO][/] {_now()} - {message}")


def print_warning(message: str):
    print(f"[yellow]\\[WARN][/] {_now()} - {message}", file=sys.stderr)


def print_failure(message: str):
    print(f"[red]\\[ERROR][/] {_now()} - {message}", file=sys.stderr)


def print_error(message: str):
    print("-" * 8, f"[red]{message}", file=sys.stderr)
    sys.exit(1)


def print_header(title: str):
    print()
    print("[blue]" + "=" * 40)
    print(f"[blue]  {title}")
    print("[blue]" + "=" * 40)


def print_kv(key: str, value: str = ""):
    print(f"[yellow]{key}[/]: {value}")


def human_readable(num):
    return humanize.naturalsize(num, binary=True)


def format_duration(seconds: float) -> str:
    seconds = int(seconds)
    return f"{seconds // 3600:02d}:{seconds % 3600 // 60:02d}:{seconds % 60:02d}"


def fully_qualified_path(path: typing.Union[str, pathlib.Path]) -> pathlib.Path:
    return pathlib.Path(path).expanduser().absolute()
