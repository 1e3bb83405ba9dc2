"""
Declarative provisioning of EC2 workers.

Instances are declared first, which validates the instance spec and loads
every referenced AWS resource. They are then provisioned one at a time:

    launch -> wait for 'running' -> tag instance -> tag volumes -> bootstrap
"""

import logging
from typing import Any

from botocore.exceptions import ClientError
from pydantic import BaseModel, Field, ValidationError
from tenacity import RetryError, Retrying, retry_if_exception, retry_if_result

from .bootstrap import Bootstrapper, BootstrapTarget, TransportFactory
from .clients import get_ec2_client, get_ec2_resource
from .core import POLL_ATTEMPTS, POLL_INTERVAL, poll_config
from .exceptions import (
    ConfigurationError,
    InstanceNotReadyError,
    ProvisioningError,
    ResourceUnavailableError,
)
from .logger import logger as default_logger
from .schemas.resources import InstanceSpec, SnapshotVolumeSpec
from .transport import SSHTransport

# kind -> boto3 EC2 resource class
RESOURCE_KINDS = {
    "image": "Image",
    "subnet": "Subnet",
    "vpc": "Vpc",
    "security_group": "SecurityGroup",
    "key_pair": "KeyPairInfo",
    "snapshot": "Snapshot",
}

# Kinds whose resource exposes a `state` that must be "available"
STATEFUL_KINDS = frozenset({"image", "subnet", "vpc"})


def _instance_not_visible_yet(e: BaseException) -> bool:
    """describe_instances lags behind run_instances for a freshly launched id."""
    return (
        isinstance(e, ClientError)
        and e.response.get("Error", {}).get("Code") == "InvalidInstanceID.NotFound"
    )


class ProvisionResult(BaseModel):
    index: int
    instance_id: str | None = None
    private_ip: str | None = None
    volumes: dict[str, str] = Field(default_factory=dict)
    error: str | None = None

    @property
    def ok(self) -> bool:
        return self.error is None


class Provisioner:
    def __init__(
        self,
        region: str,
        client: Any | None = None,
        resource: Any | None = None,
        transport_factory: TransportFactory = SSHTransport,
        poll_interval: float = POLL_INTERVAL,
        poll_attempts: int = POLL_ATTEMPTS,
        logger: logging.Logger | None = None,
    ):
        self.region = region
        self.client = client or get_ec2_client(region)
        self.resource = resource or get_ec2_resource(region)
        self.poll_interval = poll_interval
        self.poll_attempts = poll_attempts
        self.log = logger or default_logger
        self.bootstrapper = Bootstrapper(
            transport_factory=transport_factory,
            poll_interval=poll_interval,
            poll_attempts=poll_attempts,
            logger=self.log,
        )
        # Resolved AWS resources, loaded once per identifier
        self._resources: dict[tuple[str, str], Any] = {}
        self._instances: list[InstanceSpec] = []

    @property
    def declared(self) -> tuple[InstanceSpec, ...]:
        return tuple(self._instances)

    # -- resolution -------------------------------------------------------

    def resolve(self, kind: str, identifier: str) -> Any:
        """Loads an AWS resource by id, memoized, checking it is available."""
        if kind not in RESOURCE_KINDS:
            raise ConfigurationError(f"Unknown resource kind: {kind}")
        key = (kind, identifier)
        if key not in self._resources:
            self.log.debug(f"Loading {kind}: {identifier}")
            handle = getattr(self.resource, RESOURCE_KINDS[kind])(identifier)
            handle.load()
            self._resources[key] = handle
        handle = self._resources[key]
        if kind in STATEFUL_KINDS and handle.state != "available":
            raise ResourceUnavailableError(kind, identifier, handle.state)
        return handle

    def _resolve_references(self, spec: InstanceSpec) -> None:
        self.resolve("image", spec.image_id)
        self.resolve("subnet", spec.subnet_id)
        self.resolve("vpc", spec.vpc_id)
        for sg in spec.security_group_ids:
            self.resolve("security_group", sg)
        self.resolve("key_pair", spec.key_pair)
        for device in spec.devices:
            if isinstance(device, SnapshotVolumeSpec):
                self.resolve("snapshot", device.snapshot_id)

    # -- declaration ------------------------------------------------------

    def declare(self, **fields: Any) -> InstanceSpec:
        """Validates keyword arguments into an InstanceSpec and adds it."""
        try:
            spec = InstanceSpec.model_validate(fields)
        except ValidationError as e:
            raise ConfigurationError(f"Invalid instance declaration: {e}") from e
        return self.declare_spec(spec)

    def declare_spec(self, spec: InstanceSpec) -> InstanceSpec:
        self._resolve_references(spec)
        self.log.info("Adding instance to instance list.")
        self._instances.append(spec)
        return spec

    # -- provisioning -----------------------------------------------------

    def _launch(self, spec: InstanceSpec) -> str:
        response = self.client.run_instances(
            ImageId=spec.image_id,
            MinCount=1,
            MaxCount=1,
            KeyName=spec.key_pair,
            # Ids rather than names, see https://github.com/boto/boto/issues/350
            SecurityGroupIds=list(spec.security_group_ids),
            InstanceType=spec.instance_type,
            BlockDeviceMappings=spec.block_device_mappings(),
            SubnetId=spec.subnet_id,
            DisableApiTermination=False,
            InstanceInitiatedShutdownBehavior="terminate",
        )
        instance_id: str = response["Instances"][0]["InstanceId"]
        self.log.info(f"Instance reservation created: {instance_id}.")
        return instance_id

    def _describe(self, instance_id: str) -> dict[str, Any]:
        response = self.client.describe_instances(InstanceIds=[instance_id])
        return response["Reservations"][0]["Instances"][0]  # type: ignore[no-any-return]

    def _state(self, instance_id: str) -> str:
        state: str = self._describe(instance_id)["State"]["Name"]
        self.log.debug(f"Instance {instance_id} state: {state}")
        return state

    def wait_until_running(self, instance_id: str) -> dict[str, Any]:
        """Re-queries the instance until it is running. Returns its description."""
        self.log.info(
            f"Waiting for instance to transition to 'running' state: {instance_id}."
        )
        retryer = Retrying(
            retry=(
                retry_if_result(lambda state: state != "running")
                | retry_if_exception(_instance_not_visible_yet)
            ),
            **poll_config(self.poll_interval, self.poll_attempts),
        )
        try:
            retryer(self._state, instance_id)
        except RetryError as e:
            raise InstanceNotReadyError(instance_id, self.poll_attempts) from e
        return self._describe(instance_id)

    def _tag_volumes(self, spec: InstanceSpec, instance_id: str) -> dict[str, str]:
        """Tags each volume the instance reports whose device was declared."""
        self.log.info(f"Tagging EBS volumes: {instance_id}.")
        instance = self.resource.Instance(instance_id)
        volumes: dict[str, str] = {}
        for mapping in instance.block_device_mappings:
            device_name = mapping["DeviceName"]
            device = spec.device(device_name)
            # Root devices and the like are not ours to tag
            if device is None or "Ebs" not in mapping:
                continue
            volume_id = mapping["Ebs"]["VolumeId"]
            self.resource.Volume(volume_id).create_tags(
                Tags=[t.to_aws() for t in device.tags]
            )
            volumes[device_name] = volume_id
        self.log.info(f"EBS volumes tagged and attached: {instance_id}.")
        return volumes

    def provision_one(self, spec: InstanceSpec, result: ProvisionResult) -> None:
        instance_id = self._launch(spec)
        result.instance_id = instance_id

        description = self.wait_until_running(instance_id)
        result.private_ip = description.get("PrivateIpAddress")

        self.log.info(f"Tagging instance: {instance_id}.")
        self.resource.Instance(instance_id).create_tags(Tags=spec.aws_tags())

        result.volumes = self._tag_volumes(spec, instance_id)

        # At this point the instance is fully configured and we can SSH into it
        if spec.bootstrap:
            if not result.private_ip:
                raise ConfigurationError(f"Instance has no private IP: {instance_id}")
            target = BootstrapTarget(
                id=instance_id,
                ip=result.private_ip,
                user=spec.ssh_user,
                key_file=spec.key_file,
            )
            self.bootstrapper.run(target, spec.bootstrap)

    def provision(self) -> list[ProvisionResult]:
        """
        Launches and configures every declared instance, in order.
        A failure does not stop the batch and nothing is rolled back; failed
        instances are reported by id once every instance has been attempted.
        """
        if not self._instances:
            raise ConfigurationError("There are no instances to provision.")

        self.log.info(f"Provisioning {len(self._instances)} EC2 instance(s).")
        results = []
        for index, spec in enumerate(self._instances):
            result = ProvisionResult(index=index)
            try:
                self.provision_one(spec, result)
            except Exception as e:
                self.log.error(
                    f"Provisioning failed for {result.instance_id or f'#{index}'}: {e}"
                )
                result.error = str(e)
            results.append(result)

        if any(not r.ok for r in results):
            raise ProvisioningError(results)
        return results
