"""
Post-launch configuration of workers over SSH.

A bootstrap sequence is an ordered list of steps. Every step first waits for
the remote shell to answer, then ships its payload and runs it as root:

* ScriptStep: a single shell script.
* ArchiveStep: a tarball unpacked into a clean directory, entry point setup.sh.
* DirectoryStep: a local directory tree and the entry point inside it.

The first failing step aborts the sequence. The instance is left running,
partially configured, for an operator to inspect.
"""

import logging
from collections.abc import Callable, Sequence
from dataclasses import dataclass
from pathlib import Path
from typing import Annotated, Literal

from pydantic import BaseModel, ConfigDict, Field, ValidationInfo, field_validator
from tenacity import RetryError, Retrying, retry_if_result

from .core import POLL_ATTEMPTS, POLL_INTERVAL, poll_config, resolve_local_path
from .exceptions import ShellNotReadyError
from .logger import logger as default_logger
from .transport import RemoteCommand, SSHTransport

ARCHIVE_ENTRY_POINT = "setup.sh"


def _local_path(value: str | Path, info: ValidationInfo) -> Path:
    return resolve_local_path(value, (info.context or {}).get("base_dir"))


class _Step(BaseModel):
    model_config = ConfigDict(frozen=True, extra="forbid")

    path: Path


class ScriptStep(_Step):
    kind: Literal["script"] = "script"

    @field_validator("path", mode="before")
    @classmethod
    def _script_exists(cls, v: str | Path, info: ValidationInfo) -> Path:
        path = _local_path(v, info)
        if not path.is_file():
            raise ValueError(f"Script file does not exist: {path}")
        return path

    def run(self, shell: SSHTransport, log: logging.Logger) -> None:
        log.info("Copying script to script.sh and executing.")
        shell.upload(self.path, "script.sh")
        shell.run(RemoteCommand(("bash", "script.sh"), sudo=True))


class ArchiveStep(_Step):
    kind: Literal["archive"] = "archive"

    @field_validator("path", mode="before")
    @classmethod
    def _archive_exists(cls, v: str | Path, info: ValidationInfo) -> Path:
        path = _local_path(v, info)
        if not path.is_file():
            raise ValueError(f"Tar file path does not exist: {path}")
        return path

    def run(self, shell: SSHTransport, log: logging.Logger) -> None:
        log.info(f"Copying tar file, unpacking, and executing {ARCHIVE_ENTRY_POINT}.")
        shell.upload(self.path, "script.tar")
        shell.run(RemoteCommand(("rm", "-rf", "tar")))
        shell.run(RemoteCommand(("mkdir", "tar")))
        shell.run(RemoteCommand(("tar", "xf", "script.tar", "-C", "tar")))
        shell.run(RemoteCommand(("bash", ARCHIVE_ENTRY_POINT), sudo=True, cwd="tar"))


class DirectoryStep(_Step):
    kind: Literal["directory"] = "directory"
    main: str = Field(min_length=1)

    @field_validator("path", mode="before")
    @classmethod
    def _directory_exists(cls, v: str | Path, info: ValidationInfo) -> Path:
        # resolve() also drops any trailing slash
        path = _local_path(v, info)
        if not path.is_dir():
            raise ValueError(f"Path does not exist: {path}")
        return path

    @field_validator("main")
    @classmethod
    def _main_exists(cls, v: str, info: ValidationInfo) -> str:
        path = info.data.get("path")
        if path is None:
            return v
        main = path / v
        if not main.is_file():
            raise ValueError(f"Main script does not exist: {main}")
        return v

    def run(self, shell: SSHTransport, log: logging.Logger) -> None:
        log.info("Copying directory into place and executing main script.")
        shell.run(RemoteCommand(("rm", "-rf", "directory"), sudo=True))
        shell.upload(self.path, "directory", recursive=True)
        shell.run(RemoteCommand(("bash", self.main), sudo=True, cwd="directory"))


BootstrapStep = Annotated[
    ScriptStep | ArchiveStep | DirectoryStep, Field(discriminator="kind")
]


@dataclass(frozen=True)
class BootstrapTarget:
    """Where to SSH: the launched instance and the login from its spec."""

    id: str
    ip: str
    user: str
    key_file: Path


TransportFactory = Callable[[str, str, Path], SSHTransport]


class Bootstrapper:
    def __init__(
        self,
        transport_factory: TransportFactory = SSHTransport,
        poll_interval: float = POLL_INTERVAL,
        poll_attempts: int = POLL_ATTEMPTS,
        logger: logging.Logger | None = None,
    ):
        self.transport_factory = transport_factory
        self.poll_interval = poll_interval
        self.poll_attempts = poll_attempts
        self.log = logger or default_logger

    def wait_for_shell(self, shell: SSHTransport, resource_id: str) -> None:
        """Polls with a trivial command until the shell answers."""
        self.log.info(f"Waiting for SSH to be ready: {resource_id}.")
        retryer = Retrying(
            retry=retry_if_result(lambda ok: not ok),
            **poll_config(self.poll_interval, self.poll_attempts),
        )
        try:
            retryer(shell.ready)
        except RetryError as e:
            raise ShellNotReadyError(resource_id, self.poll_attempts) from e

    def run(self, target: BootstrapTarget, steps: Sequence[BootstrapStep]) -> None:
        """Runs the steps in order. The first failure propagates."""
        self.log.info(f"Running sequence of bootstrap commands: {target.id}.")
        shell = self.transport_factory(target.user, target.ip, target.key_file)
        for n, step in enumerate(steps, start=1):
            self.wait_for_shell(shell, target.id)
            self.log.info(f"Bootstrap step {n}/{len(steps)} ({step.kind}): {target.id}.")
            step.run(shell, self.log)
        self.log.info(f"Bootstrap finished: {target.id}.")
