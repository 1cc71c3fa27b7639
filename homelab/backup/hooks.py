### stdlib imports
import pathlib
import typing

### vendor imports
import sh

### local imports
from . import command, helper


def run_hook(
    label: str,
    hook: typing.Optional[str],
    cwd: pathlib.Path,
    timeout: typing.Optional[float] = None,
    bash: typing.Optional[sh.Command] = None,
) -> bool:
    """Run a user hook with bash in the app directory. Failures only warn."""
    if not hook:
        return True

    bash = bash or command.bash
    if bash is None:
        helper.print_warning(f"{label} hook skipped, bash is not installed")
        return False

    helper.print_info(f"Running {label} hook...")
    try:
        bash("-c", hook, _cwd=str(cwd), _timeout=timeout)
    except (sh.ErrorReturnCode, sh.TimeoutException) as err:
        helper.print_warning(f"{label} hook failed (non-fatal): {err}")
        return False
    return True
