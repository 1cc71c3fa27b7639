### stdlib imports
import os
import pathlib
import time
import typing

### vendor imports
import sh

### local imports
from . import errors, helper, model, runtime as composeRuntime


class LifecycleController:
    def __init__(
        self,
        settings: model.HostSettings,
        runtime: typing.Optional[composeRuntime.ComposeRuntime] = None,
        sleep: typing.Callable[[float], None] = time.sleep,
    ):
        self.settings = settings
        self.runtime = runtime or composeRuntime.ComposeRuntime()
        self.sleep = sleep

    def stop(
        self,
        app_name: str,
        app_config: model.AppConfig,
        location: pathlib.Path,
        enforce_policy: bool = True,
    ) -> bool:
        """Stop the app's containers. Returns whether anything was running.

        Best effort: a failed graceful stop escalates to a kill, and a failed
        kill is only a warning since the following start is the safety net.
        """
        if enforce_policy and not app_config.should_stop:
            helper.print_info(f"Hot backup enabled for {app_name}, skipping container stop")
            return False

        helper.print_info(f"Stopping containers for {app_name}...")

        if not location.is_dir():
            helper.print_warning(f"Compose directory not found: {location}")
            return False

        if not self.runtime.is_running(location):
            helper.print_info(f"No running containers for {app_name}")
            return False

        try:
            self.runtime.stop(location, self.settings.stop_timeout)
        except errors.ContainerRuntimeError:
            helper.print_warning("Graceful stop failed, forcing...")
            try:
                self.runtime.kill(location)
            except errors.ContainerRuntimeError as err:
                helper.print_warning(f"Forced stop failed: {err}")

        helper.print_info(f"Containers stopped for {app_name}")
        return True

    def start(
        self,
        app_name: str,
        app_config: model.AppConfig,
        location: pathlib.Path,
        enforce_policy: bool = True,
    ) -> None:
        """Bring the app back up. Raises LifecycleError if `up` fails."""
        if enforce_policy and not app_config.should_stop:
            return

        helper.print_info(f"Starting containers for {app_name}...")

        if not location.is_dir():
            raise errors.LifecycleError(f"Compose directory not found: {location}")

        self._run_prepare(location)

        wrapper = self._secrets_wrapper(app_config)
        if wrapper:
            helper.print_info(f"Starting with {wrapper.name}...")

        try:
            self.runtime.up(location, wrapper)
        except errors.ContainerRuntimeError as err:
            raise errors.LifecycleError(f"Failed to start {app_name}", err.details) from err

        self.wait_until_running(app_name, location)

    def wait_until_running(self, app_name: str, location: pathlib.Path) -> bool:
        for _ in range(self.settings.startup_retries):
            self.sleep(self.settings.startup_interval)
            if self.runtime.is_running(location):
                helper.print_info(f"App {app_name} started successfully")
                return True

        helper.print_warning(f"App {app_name} startup timed out, may still be initializing")
        return False

    def _secrets_wrapper(self, app_config: model.AppConfig) -> typing.Optional[pathlib.Path]:
        wrapper = self.settings.secrets_wrapper
        if app_config.secrets.infisical_path and wrapper.is_file() and os.access(wrapper, os.X_OK):
            return wrapper
        return None

    def _run_prepare(self, location: pathlib.Path) -> None:
        # Some stacks (Harbor) need their config regenerated before `up`
        prepare = location / "prepare"
        if not (prepare.is_file() and os.access(prepare, os.X_OK)):
            return

        helper.print_info("Running prepare script...")
        try:
            sh.Command(str(prepare))(_cwd=str(location))
        except sh.ErrorReturnCode as err:
            helper.print_warning(f"Prepare script failed: {err}")
