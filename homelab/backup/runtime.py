### stdlib imports
import gzip
import pathlib
import re
import typing

### vendor imports
import sh

### local imports
from . import command, errors

RUNNING_PATTERN = re.compile(r"running|Up")


class ComposeRuntime:
    def __init__(self, docker: typing.Optional[sh.Command] = None):
        self.docker = docker or command.docker

    def _compose(self, directory: pathlib.Path, *args, **kwargs):
        try:
            return self.docker("compose", *args, _cwd=str(directory), **kwargs)
        except (sh.ErrorReturnCode, sh.TimeoutException) as err:
            raise errors.ContainerRuntimeError(
                f"docker compose {' '.join(args)} failed",
                {"directory": str(directory), "error": str(err)},
            ) from err

    def ps(self, directory: pathlib.Path) -> str:
        try:
            return str(self._compose(directory, "ps"))
        except errors.ContainerRuntimeError:
            return ""

    def is_running(self, directory: pathlib.Path) -> bool:
        return bool(RUNNING_PATTERN.search(self.ps(directory)))

    def stop(self, directory: pathlib.Path, timeout: int) -> None:
        self._compose(directory, "stop", "--timeout", str(timeout))

    def kill(self, directory: pathlib.Path) -> None:
        self._compose(directory, "kill")

    def up(self, directory: pathlib.Path, wrapper: typing.Optional[pathlib.Path] = None) -> None:
        if wrapper is None:
            self._compose(directory, "up", "-d")
            return

        # The wrapper injects secrets into the environment, then execs its arguments
        try:
            sh.Command(str(wrapper))("docker", "compose", "up", "-d", _cwd=str(directory))
        except (sh.ErrorReturnCode, sh.CommandNotFound) as err:
            raise errors.ContainerRuntimeError(
                f"{wrapper.name} docker compose up failed",
                {"directory": str(directory), "error": str(err)},
            ) from err

    def container_id(self, directory: pathlib.Path, services: typing.Sequence[str]) -> typing.Optional[str]:
        try:
            output = str(self._compose(directory, "ps", "-q", *services))
        except errors.ContainerRuntimeError:
            return None
        ids = output.split()
        return ids[0] if ids else None

    def dump(self, container_id: str, argv: typing.Sequence[str], destination: pathlib.Path) -> None:
        """Stream the output of `argv` run inside the container into a gzip file."""
        try:
            with gzip.open(destination, "wb") as handle:

                # sh hands file objects' descriptors straight to the child, so
                # compress through a callback; chunks sh could decode arrive as str
                def write_chunk(chunk):
                    handle.write(chunk.encode("utf-8") if isinstance(chunk, str) else chunk)

                self.docker("exec", container_id, *argv, _out=write_chunk, _encoding="utf-8")
        except (sh.ErrorReturnCode, OSError) as err:
            raise errors.ContainerRuntimeError(
                f"{argv[0]} failed in container {container_id}",
                {"error": str(err)},
            ) from err
