from typing import Any


class PoolkeeperError(Exception):
    """Base class for every error raised by poolkeeper."""


class ConfigurationError(PoolkeeperError):
    """Invalid instance declaration or pool configuration. Needs an operator."""


class ResourceUnavailableError(ConfigurationError):
    def __init__(self, kind: str, identifier: str, state: str | None):
        self.kind = kind
        self.identifier = identifier
        self.state = state
        super().__init__(f"Resource not available: {kind} {identifier} (state: {state})")


class ReadinessTimeoutError(PoolkeeperError):
    """A bounded readiness poll ran out of attempts."""

    what = "Resource did not become ready"

    def __init__(self, resource_id: str, attempts: int):
        self.resource_id = resource_id
        self.attempts = attempts
        super().__init__(f"{self.what} after {attempts} attempts: {resource_id}")


class InstanceNotReadyError(ReadinessTimeoutError):
    what = "Instance did not reach 'running' state"


class ShellNotReadyError(ReadinessTimeoutError):
    what = "SSH did not become ready"


class ProtocolError(PoolkeeperError):
    """Empty or malformed response from the CI master."""


class WorkerNameError(ProtocolError):
    def __init__(self, name: str):
        self.name = name
        super().__init__(f"IP address does not look correct in worker name: {name!r}")


class RemoteCommandError(PoolkeeperError):
    def __init__(self, host: str, command: str, returncode: int, stderr: str = ""):
        self.host = host
        self.command = command
        self.returncode = returncode
        self.stderr = stderr
        last_line = stderr.strip().splitlines()[-1] if stderr.strip() else "no output"
        super().__init__(
            f"Remote command failed on {host} ({returncode}): {command} - {last_line}"
        )


class ProvisioningError(PoolkeeperError):
    """One or more declared instances failed to provision."""

    def __init__(self, results: list[Any]):
        self.results = results
        failed = [r for r in results if r.error]
        ids = ", ".join(r.instance_id or f"#{r.index}" for r in failed)
        super().__init__(f"{len(failed)} of {len(results)} instances failed: {ids}")
