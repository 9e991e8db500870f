"""Remote storage module for Sunlapse, backed by rclone.

rclone keeps the OAuth credentials for the remote (for example Google Drive)
in its own configuration, so nothing here handles tokens directly.
"""

import subprocess
from pathlib import Path
from typing import Iterable

from sunlapse.config import SyncConfig
from sunlapse.logger import get_logger, with_fields

logger = get_logger(__name__)


class RemoteError(Exception):
    """Exception raised when a remote operation fails."""

    pass


class RemoteStore:
    """Directory creation and uploads against an rclone remote."""

    def __init__(self, config: SyncConfig):
        """Initialize the remote store.

        Args:
            config: Sync configuration with the rclone remote name.
        """
        self.config = config
        self.remote = config.remote.rstrip("/")

    def _target(self, name: str) -> str:
        return f"{self.remote}/{name}"

    def _run(self, *args: str) -> str:
        """Run an rclone subcommand and return its stdout.

        Raises:
            RemoteError: If rclone is missing, times out or fails.
        """
        cmd = ["rclone", *args]
        log = with_fields(logger, command=" ".join(cmd))
        log.debug("Running rclone")

        try:
            result = subprocess.run(
                cmd,
                capture_output=True,
                text=True,
                timeout=self.config.timeout_s,
            )
        except FileNotFoundError:
            raise RemoteError("rclone not found. Install with: sudo apt install rclone")
        except subprocess.TimeoutExpired:
            raise RemoteError(f"rclone timed out after {self.config.timeout_s}s")

        if result.returncode != 0:
            log.error(result.stderr.strip())
            raise RemoteError(f"rclone {args[0]} failed with exit code {result.returncode}")

        if result.stdout:
            log.debug(f"rclone output: {result.stdout}")
        return result.stdout

    def probe(self) -> bool:
        """Check that the remote is reachable and authenticated.

        Returns:
            True if the remote answered a directory listing.
        """
        try:
            self._run("lsd", self.remote)
        except RemoteError as e:
            logger.error(f"Error reaching remote {self.remote}: {e}")
            return False
        return True

    def create_directory(self, name: str) -> None:
        """Create a directory on the remote.

        Raises:
            RemoteError: On failure.
        """
        self._run("mkdir", self._target(name))
        logger.info(f"Created remote directory {self._target(name)}")

    def upload(self, paths: Iterable[Path], name: str) -> None:
        """Copy local files into a remote directory.

        Raises:
            RemoteError: On the first failed copy.
        """
        for path in paths:
            self._run("copy", str(path), self._target(name))
            logger.info(f"Uploaded {path.name} to {self._target(name)}")
