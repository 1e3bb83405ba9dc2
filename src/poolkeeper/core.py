from pathlib import Path
from typing import Any, Literal

from tenacity import stop_after_attempt, wait_fixed

# Bounded polling used for instance and shell readiness.
# Fixed interval, hard ceiling, no backoff.
POLL_INTERVAL = 10
POLL_ATTEMPTS = 20


def poll_config(
    interval: float = POLL_INTERVAL, attempts: int = POLL_ATTEMPTS
) -> dict[str, Any]:
    """Keyword arguments for tenacity.Retrying, e.g. Retrying(**poll_config())."""
    return {
        "stop": stop_after_attempt(attempts),
        "wait": wait_fixed(interval),
    }


DEFAULT_REGION = "us-west-2"

# Instances are billed by the hour. Terminating is only worth it when the
# minute-of-hour of the uptime lies strictly inside this range.
BILLING_WINDOW = (45, 59)

# Tag used to scope instances to a pool of workers
POOL_TAG = "pool"

# Jenkins naming convention, e.g. "worker - 10.0.0.1"
WORKER_NAME_FORMAT = "worker - {ip}"
WORKER_NAME_SEPARATOR = " - "

# Display names Jenkins uses for its own built-in node
MASTER_NAMES = frozenset({"master", "Built-In Node"})

# Parameters for nodes created on the Jenkins master
JENKINS_PORT = 8080
JENKINS_REMOTE_FS = "/var/lib/jenkins"
JENKINS_PRIVATE_KEY = "/var/lib/jenkins/.ssh/jenkins"
JENKINS_EXECUTORS = 10
HTTP_TIMEOUT = 30

VolumeType = Literal["standard", "io1", "gp2"]

INSTANCE_TYPES = frozenset(
    {
        "t1.micro", "m1.small", "m1.medium", "m1.large", "m1.xlarge",
        "m3.medium", "m3.large", "m3.xlarge", "m3.2xlarge",
        "m4.large", "m4.xlarge", "m4.2xlarge", "m4.4xlarge", "m4.10xlarge",
        "t2.micro", "t2.small", "t2.medium", "t2.large",
        "m2.xlarge", "m2.2xlarge", "m2.4xlarge", "cr1.8xlarge",
        "i2.xlarge", "i2.2xlarge", "i2.4xlarge", "i2.8xlarge",
        "hi1.4xlarge", "hs1.8xlarge", "c1.medium", "c1.xlarge",
        "c3.large", "c3.xlarge", "c3.2xlarge", "c3.4xlarge", "c3.8xlarge",
        "c4.large", "c4.xlarge", "c4.2xlarge", "c4.4xlarge", "c4.8xlarge",
        "cc1.4xlarge", "cc2.8xlarge", "g2.2xlarge", "cg1.4xlarge",
        "r3.large", "r3.xlarge", "r3.2xlarge", "r3.4xlarge", "r3.8xlarge",
        "d2.xlarge", "d2.2xlarge", "d2.4xlarge", "d2.8xlarge",
    }
)

# Remote shell options. Workers are disposable so host keys are not pinned.
SSH_CONNECT_TIMEOUT = 10
SSH_OPTIONS = (
    "-o",
    "UserKnownHostsFile=/dev/null",
    "-o",
    "StrictHostKeyChecking=no",
    "-o",
    "BatchMode=yes",
)


def resolve_local_path(value: str | Path, base_dir: str | Path | None = None) -> Path:
    """Expands ~ and anchors relative paths at base_dir (the config file's directory)."""
    path = Path(value).expanduser()
    if not path.is_absolute() and base_dir is not None:
        path = Path(base_dir) / path
    return path.resolve()
