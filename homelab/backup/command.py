### stdlib imports
import os
import sys
import typing

### vendor imports
import sh

### local imports
from . import errors, helper


def lookup(name: str) -> typing.Optional[sh.Command]:
    try:
        return sh.Command(name)
    except sh.CommandNotFound:
        return None


restic = lookup("restic")
docker = lookup("docker")
bash = lookup("bash")


def require(**tools: typing.Optional[sh.Command]) -> None:
    """Fail before any mutation if one of the named tools is not installed."""
    missing = [name for name, tool in tools.items() if tool is None]
    if missing:
        raise errors.PreconditionError(
            f"Missing required tools: {', '.join(missing)}"
        )


def maximize_niceness():
    os.nice(20)


def run_command_politely(
    command: sh.Command,
    args: list[typing.Any],
    env: typing.Optional[dict] = None,
    okCodes: list[int] = [0],
    timeout: typing.Optional[float] = None,
):
    # Start the command
    running_proc = command(
        *args,
        _preexec_fn=maximize_niceness,
        _bg=True,
        _env=env or dict(os.environ),
        _out=sys.stdout,
        _err=sys.stderr,
        _tee=True,
        _ok_code=okCodes,
        _timeout=timeout,
    )

    # Wait for it to finish and catch any keyboard interrupts
    try:
        running_proc.wait()
    except KeyboardInterrupt:
        helper.print_line("Keyboard interrupt detected")
        if running_proc.is_alive():
            helper.print_line("Killing the running process...")
            running_proc.kill()
        sys.exit(130)

    return running_proc
