import re

from pydantic import BaseModel, ConfigDict, Field

from ..core import WORKER_NAME_FORMAT, WORKER_NAME_SEPARATOR
from ..exceptions import WorkerNameError

DOTTED_QUAD = re.compile(r"\d{1,3}(?:\.\d{1,3}){3}")


def worker_name(ip: str) -> str:
    """Canonical Jenkins display name for the worker at `ip`."""
    return WORKER_NAME_FORMAT.format(ip=ip)


def parse_worker_ip(name: str) -> str:
    """
    Extracts the IP address encoded in a worker display name.
    Scraping the address from the node page proved unreliable, so the
    address lives in the name itself: "worker - 10.0.0.1".
    """
    _, sep, address = name.partition(WORKER_NAME_SEPARATOR)
    address = address.strip()
    if not sep or not DOTTED_QUAD.fullmatch(address):
        raise WorkerNameError(name)
    if any(int(octet) > 255 for octet in address.split(".")):
        raise WorkerNameError(name)
    return address


class WorkerNode(BaseModel):
    """One entry of the master's /computer/api/json listing."""

    model_config = ConfigDict(frozen=True, populate_by_name=True, extra="ignore")

    display_name: str = Field(alias="displayName")
    # Snapshot of the master's view. Races with job dispatch, which is accepted.
    idle: bool = False

    @property
    def name(self) -> str:
        return self.display_name

    @property
    def ip(self) -> str:
        return parse_worker_ip(self.display_name)


class BuildQueue(BaseModel):
    """Links to the jobs waiting in the build queue."""

    model_config = ConfigDict(frozen=True)

    jobs: list[str] = Field(default_factory=list)

    @property
    def empty(self) -> bool:
        return not self.jobs

    def __len__(self) -> int:
        return len(self.jobs)
