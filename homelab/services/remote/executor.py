"""Run commands and copy files on machines over SSH."""
import shlex
import shutil
import subprocess
from pathlib import Path
from typing import List, Optional, Type

from homelab.core.config import HomelabSettings, get_settings
from homelab.core.logger import get_logger
from homelab.models.errors import RemoteCommandError, RemoteConnectivityError
from homelab.models.machine import Machine

logger = get_logger(__name__)


class RemoteExecutor:
    """SSH/scp wrapper with timeouts on every call.

    Local machines (``local: true`` or a loopback address) run commands
    through the local shell instead of SSH.
    """

    def __init__(self, settings: Optional[HomelabSettings] = None, mock: bool = False):
        self.settings = settings or get_settings()
        self.mock = mock

    def _ssh_options(self, machine: Machine) -> List[str]:
        return [
            "-i", self.settings.ssh_key_file,
            "-o", "BatchMode=yes",
            "-o", "PasswordAuthentication=no",
            "-o", "PubkeyAuthentication=yes",
            "-o", "IdentitiesOnly=yes",
            "-o", "StrictHostKeyChecking=accept-new",
            "-o", f"ConnectTimeout={self.settings.ssh_timeout}",
        ]

    def ssh_command(self, machine: Machine, command: str) -> List[str]:
        return (
            ["ssh"] + self._ssh_options(machine)
            + ["-p", str(machine.ssh_port), machine.ssh_destination(), command]
        )

    def test_connection(self, machine: Machine) -> None:
        """Raise RemoteConnectivityError unless the machine answers over SSH."""
        if self.mock:
            logger.info(f"MOCK: Would test SSH connection to {machine.ssh_destination()}")
            return
        if machine.is_local:
            return

        argv = self.ssh_command(machine, "true")
        timeout = self.settings.ssh_timeout * 2
        try:
            result = subprocess.run(argv, capture_output=True, text=True, timeout=timeout)
        except subprocess.TimeoutExpired as exc:
            raise RemoteConnectivityError(machine.key, f"timed out after {timeout}s") from exc
        except FileNotFoundError as exc:
            raise RemoteConnectivityError(machine.key, "ssh client not installed") from exc

        if result.returncode != 0:
            reason = result.stderr.strip().splitlines()[-1] if result.stderr.strip() else f"exit code {result.returncode}"
            raise RemoteConnectivityError(machine.key, reason)
        logger.debug(f"SSH connection to {machine.key} OK")

    def run(
        self,
        machine: Machine,
        command: str,
        step: str = "run",
        timeout: Optional[int] = None,
        error_cls: Type[RemoteCommandError] = RemoteCommandError,
    ) -> str:
        """Run a shell command on a machine and return its stdout."""
        if self.mock:
            logger.info(f"MOCK: Would run on {machine.key}: {command}")
            return ""

        argv = ["bash", "-c", command] if machine.is_local else self.ssh_command(machine, command)
        timeout = timeout or self.settings.command_timeout
        logger.debug(f"{machine.key}: {command}")
        try:
            result = subprocess.run(argv, capture_output=True, text=True, timeout=timeout)
        except subprocess.TimeoutExpired as exc:
            raise RemoteConnectivityError(machine.key, f"{step} timed out after {timeout}s") from exc
        except FileNotFoundError as exc:
            raise RemoteConnectivityError(machine.key, f"{argv[0]} not installed") from exc

        if result.returncode != 0:
            raise error_cls(machine.key, step, command, result.returncode, result.stderr)
        return result.stdout

    def copy(self, machine: Machine, local_dir: Path, remote_dir: str) -> None:
        """Copy the contents of a local directory into a directory on the machine."""
        if self.mock:
            logger.info(f"MOCK: Would copy {local_dir} to {machine.key}:{remote_dir}")
            return

        if machine.is_local:
            try:
                shutil.copytree(local_dir, remote_dir, dirs_exist_ok=True)
            except OSError as exc:
                raise RemoteCommandError(
                    machine.key, "copy", f"copy {local_dir} to {remote_dir}", stderr=str(exc)
                ) from exc
            return

        self.run(machine, f"mkdir -p {shlex.quote(remote_dir)}", step="copy")
        argv = (
            ["scp", "-r", "-q"] + self._ssh_options(machine)
            + ["-P", str(machine.ssh_port), f"{local_dir}/.", f"{machine.ssh_destination()}:{remote_dir}"]
        )
        try:
            result = subprocess.run(
                argv, capture_output=True, text=True, timeout=self.settings.command_timeout
            )
        except subprocess.TimeoutExpired as exc:
            raise RemoteConnectivityError(machine.key, "copy timed out") from exc
        except FileNotFoundError as exc:
            raise RemoteConnectivityError(machine.key, "scp client not installed") from exc

        if result.returncode != 0:
            raise RemoteCommandError(machine.key, "copy", " ".join(argv), result.returncode, result.stderr)
