import logging
from datetime import datetime, timezone
from typing import Any, Protocol

from ..clients import get_ec2_client
from ..core import BILLING_WINDOW
from ..logger import logger as default_logger
from ..schemas.cloud import CloudInstance


class HasIP(Protocol):
    @property
    def ip(self) -> str | None: ...


def utcnow() -> datetime:
    return datetime.now(timezone.utc)


def uptime_minute(launch_time: datetime, now: datetime) -> float:
    """Minute-of-hour component of the uptime, e.g. 125.5 minutes up -> 5.5."""
    uptime_minutes = (now - launch_time).total_seconds() / 60
    return uptime_minutes % 60


def in_billing_window(minute: float) -> bool:
    low, high = BILLING_WINDOW
    return low < minute < high


class CloudState:
    """
    Read side of the EC2 inventory plus the one destructive call we make.
    Tag queries are cached for the lifetime of the accessor.
    """

    def __init__(
        self,
        region: str,
        client: Any | None = None,
        logger: logging.Logger | None = None,
    ):
        self.region = region
        self.client = client or get_ec2_client(region)
        self.log = logger or default_logger
        self._by_tag: dict[tuple[str, str], list[CloudInstance]] = {}

    def _describe(self, filters: list[dict[str, Any]]) -> list[CloudInstance]:
        paginator = self.client.get_paginator("describe_instances")
        results = []
        for page in paginator.paginate(Filters=filters):
            for reservation in page.get("Reservations", []):
                for instance in reservation.get("Instances", []):
                    results.append(CloudInstance.from_aws(instance))
        return results

    def instances_by_tag(self, key: str, value: str) -> list[CloudInstance]:
        """Instances carrying tag key=value. Cached, see refresh_instances_by_tag."""
        cache_key = (key, value)
        if cache_key not in self._by_tag:
            self.log.debug(f"Querying instances tagged {key}={value} in {self.region}")
            self._by_tag[cache_key] = self._describe(
                [{"Name": f"tag:{key}", "Values": [value]}]
            )
        return self._by_tag[cache_key]

    def refresh_instances_by_tag(self, key: str, value: str) -> list[CloudInstance]:
        self._by_tag.pop((key, value), None)
        return self.instances_by_tag(key, value)

    def clear_cache(self) -> None:
        self._by_tag.clear()

    def instances_by_ip(self, *ip_addresses: str) -> list[CloudInstance]:
        """Instances with any of the given private IPs. Never cached."""
        if not ip_addresses:
            return []
        return self._describe(
            [{"Name": "private-ip-address", "Values": list(ip_addresses)}]
        )

    def destroy_worker(self, worker: HasIP) -> bool:
        """
        Terminates the instance behind `worker` if its uptime is inside the
        billing window. Returns whether a termination was requested.
        """
        address = worker.ip
        matches = self.instances_by_ip(address) if address else []
        if not matches:
            self.log.info(f"Did not find node: {address}. Not doing anything.")
            return False

        node = matches[0]
        now = utcnow()
        minute = uptime_minute(node.launch_time, now)
        if not in_billing_window(minute):
            uptime = (now - node.launch_time).total_seconds() / 60
            self.log.info(
                f"Not terminating node: {address}. Uptime minutes: {uptime:.1f}"
            )
            return False

        self.log.info(f"Terminating node: {address} ({node.id})")
        self.client.terminate_instances(InstanceIds=[node.id])
        return True
