"""Process management for the frpc binary in agent mode."""

import logging
import os
import subprocess
import threading
from pathlib import Path

from frp_operator.exceptions import ProcessError
from frp_operator.frpc.config import ClientConfig

logger = logging.getLogger(__name__)


class FrpcProcess:
    """Runs frpc as a child process and asks it to reload its configuration.

    Reloading goes through the frpc admin webserver, so it only works when the
    root configuration enables one. Without it, reload requests are skipped and
    new fragments are picked up on the next frpc restart.
    """

    def __init__(self, binary_path: str, config_path: str, reload_enabled: bool = True):
        """Initialize the process manager.

        Args:
            binary_path: Path to the frpc binary.
            config_path: Path to the root frpc configuration file.
            reload_enabled: Whether the root configuration enables the admin webserver.
        """
        self.binary_path = binary_path
        self.config_path = config_path
        self.reload_enabled = reload_enabled
        self._process: subprocess.Popen | None = None
        # Reloads are requested from several reconcile threads
        self._reload_lock = threading.Lock()

    def _validate_binary(self) -> None:
        binary = Path(self.binary_path)
        if not binary.is_file():
            raise ProcessError(f"frpc binary not found: {self.binary_path}")
        if not os.access(binary, os.X_OK):
            raise ProcessError(f"frpc binary is not executable: {self.binary_path}")

    def write_config(self, config: ClientConfig) -> None:
        """Write the root configuration file.

        Args:
            config: The root client configuration.
        """
        path = Path(self.config_path)
        try:
            path.parent.mkdir(parents=True, exist_ok=True)
            path.write_text(config.to_yaml())
        except OSError as e:
            raise ProcessError(f"failed to write config {path}: {e}") from e
        logger.info(f"Wrote root config to {path}")
        logger.debug(config.to_yaml())

    def start(self) -> None:
        """Spawn frpc with the root configuration."""
        if self.is_running():
            logger.debug(f"frpc already running with pid {self._process.pid}")
            return

        self._validate_binary()
        try:
            self._process = subprocess.Popen(
                [self.binary_path, "-c", self.config_path],
                stdin=subprocess.DEVNULL,
            )
        except OSError as e:
            raise ProcessError(f"failed to spawn frpc: {e}") from e
        logger.info(f"Started frpc with pid {self._process.pid}")

    def is_running(self) -> bool:
        return self._process is not None and self._process.poll() is None

    def wait(self) -> int:
        """Block until frpc exits.

        Returns:
            The frpc exit code.
        """
        if self._process is None:
            raise ProcessError("frpc has not been started")
        returncode = self._process.wait()
        if returncode != 0:
            logger.error(f"frpc exited with status {returncode}")
        else:
            logger.info("frpc exited")
        return returncode

    def stop(self, timeout: float = 5.0) -> None:
        """Terminate frpc, killing it if it does not exit in time."""
        if not self.is_running():
            return

        logger.info(f"Stopping frpc with pid {self._process.pid}")
        self._process.terminate()
        try:
            self._process.wait(timeout=timeout)
        except subprocess.TimeoutExpired:
            logger.warning("frpc did not terminate gracefully, killing it")
            self._process.kill()
            self._process.wait()

    def reload(self) -> None:
        """Ask the running frpc to reload its configuration.

        Raises:
            ProcessError: If the reload command cannot be run or exits non-zero.
        """
        if not self.reload_enabled:
            logger.warning("frpc admin webserver is disabled, skipping reload")
            return

        with self._reload_lock:
            try:
                result = subprocess.run(
                    [self.binary_path, "reload", "-c", self.config_path],
                    stdin=subprocess.DEVNULL,
                    capture_output=True,
                    text=True,
                    timeout=30,
                )
            except (OSError, subprocess.TimeoutExpired) as e:
                raise ProcessError(f"failed to run frpc reload: {e}") from e

        if result.returncode != 0:
            raise ProcessError(
                f"frpc reload exited with status {result.returncode}: {result.stderr.strip() or result.stdout.strip()}"
            )
        logger.info("Reloaded frpc configuration")
