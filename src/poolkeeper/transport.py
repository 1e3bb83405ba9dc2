"""
Remote shell access to workers through the system ssh/scp binaries.

Commands are argv tuples quoted with shlex before they reach the remote
shell. Nothing is ever interpolated into a command string.
"""

import shlex
import subprocess
from dataclasses import dataclass
from pathlib import Path

from .core import SSH_CONNECT_TIMEOUT, SSH_OPTIONS
from .exceptions import RemoteCommandError
from .logger import logger


@dataclass(frozen=True)
class RemoteCommand:
    argv: tuple[str, ...]
    sudo: bool = False
    cwd: str | None = None

    def render(self) -> str:
        """Quoted command line for the remote shell."""
        argv = ("sudo", *self.argv) if self.sudo else self.argv
        line = shlex.join(argv)
        if self.cwd:
            return f"cd {shlex.quote(self.cwd)} && {line}"
        return line


class SSHTransport:
    def __init__(
        self,
        user: str,
        host: str,
        key_file: str | Path,
        connect_timeout: int = SSH_CONNECT_TIMEOUT,
        command_timeout: float | None = None,
    ):
        self.user = user
        self.host = host
        self.key_file = str(key_file)
        self.connect_timeout = connect_timeout
        self.command_timeout = command_timeout

    @property
    def destination(self) -> str:
        return f"{self.user}@{self.host}"

    def _options(self) -> list[str]:
        return [
            "-o",
            f"ConnectTimeout={self.connect_timeout}",
            *SSH_OPTIONS,
            "-i",
            self.key_file,
        ]

    def _exec(self, cmd: list[str], description: str) -> subprocess.CompletedProcess:
        logger.debug(f"{self.host}: {description}")
        res = subprocess.run(
            cmd, capture_output=True, text=True, timeout=self.command_timeout
        )
        if res.returncode != 0:
            raise RemoteCommandError(self.host, description, res.returncode, res.stderr)
        return res

    def run(self, command: RemoteCommand) -> str:
        """Runs a command on the host and returns its stdout."""
        line = command.render()
        ssh_cmd = ["ssh", *self._options(), self.destination, line]
        return self._exec(ssh_cmd, line).stdout

    def upload(self, local: str | Path, remote: str, recursive: bool = False) -> None:
        """Copies a file, or a directory tree when recursive, to the host."""
        scp_cmd = ["scp", *self._options()]
        if recursive:
            scp_cmd.append("-r")
        scp_cmd += [str(local), f"{self.destination}:{remote}"]
        self._exec(scp_cmd, f"scp {local} -> {remote}")

    def ready(self) -> bool:
        """A trivial command answered with some output means sshd is up."""
        ssh_cmd = ["ssh", *self._options(), self.destination, "uptime"]
        try:
            res = subprocess.run(
                ssh_cmd,
                capture_output=True,
                text=True,
                timeout=self.connect_timeout * 3,
            )
        except subprocess.TimeoutExpired:
            return False
        return res.returncode == 0 and bool(res.stdout.strip())
