import re
from pathlib import Path
from typing import Annotated, Any, Literal

from pydantic import (
    BaseModel,
    ConfigDict,
    Field,
    ValidationInfo,
    field_validator,
    model_validator,
)

from ..bootstrap import BootstrapStep
from ..core import INSTANCE_TYPES, VolumeType, resolve_local_path
from .cloud import Tag

# Snapshot-backed volumes only launch on sdf..sdp, see
# http://stackoverflow.com/questions/24346302/launching-with-snapshot-based-volume-fails
SNAPSHOT_DEVICE = re.compile(r"^/dev/sd[f-p]")


class VolumeSpec(BaseModel):
    """A fresh EBS volume created with the instance."""

    model_config = ConfigDict(frozen=True, extra="forbid")

    kind: Literal["volume"] = "volume"
    device_name: str
    size: int = Field(gt=0, description="GiB")
    volume_type: VolumeType
    tags: list[Tag]

    @field_validator("device_name")
    @classmethod
    def _device_name(cls, v: str) -> str:
        if not v.startswith("/dev/sd"):
            raise ValueError("Drive name must start with '/dev/sd*'.")
        return v

    def block_device_mapping(self) -> dict[str, Any]:
        return {
            "DeviceName": self.device_name,
            "Ebs": {
                "VolumeSize": self.size,
                "DeleteOnTermination": True,
                "VolumeType": self.volume_type,
                "Encrypted": False,
            },
        }


class SnapshotVolumeSpec(BaseModel):
    """An EBS volume restored from a snapshot."""

    model_config = ConfigDict(frozen=True, extra="forbid")

    kind: Literal["snapshot"] = "snapshot"
    device_name: str
    snapshot_id: str = Field(min_length=1)
    volume_type: VolumeType | None = None
    tags: list[Tag]

    @field_validator("device_name")
    @classmethod
    def _device_name(cls, v: str) -> str:
        if not SNAPSHOT_DEVICE.match(v):
            raise ValueError("Drive name must start with '/dev/sd[f-p]'.")
        return v

    def block_device_mapping(self) -> dict[str, Any]:
        ebs: dict[str, Any] = {
            "DeleteOnTermination": True,
            "SnapshotId": self.snapshot_id,
        }
        if self.volume_type:
            ebs["VolumeType"] = self.volume_type
        return {"DeviceName": self.device_name, "Ebs": ebs}


DeviceSpec = Annotated[VolumeSpec | SnapshotVolumeSpec, Field(discriminator="kind")]


class InstanceSpec(BaseModel):
    """
    Everything needed to launch and configure one worker.
    Every field is required and unknown fields are rejected.
    """

    model_config = ConfigDict(frozen=True, extra="forbid")

    image_id: str = Field(min_length=1)
    subnet_id: str = Field(min_length=1)
    vpc_id: str = Field(min_length=1)
    security_group_ids: list[str] = Field(min_length=1)
    key_pair: str = Field(min_length=1)
    key_file: Path
    ssh_user: str = Field(min_length=1)
    instance_type: str
    devices: list[DeviceSpec]
    bootstrap: list[BootstrapStep]
    tags: list[Tag]

    @field_validator("key_file", mode="before")
    @classmethod
    def _key_file_exists(cls, v: str | Path, info: ValidationInfo) -> Path:
        path = resolve_local_path(v, (info.context or {}).get("base_dir"))
        if not path.is_file():
            raise ValueError(f"File does not exist: {path}")
        return path

    @field_validator("instance_type")
    @classmethod
    def _known_instance_type(cls, v: str) -> str:
        if v not in INSTANCE_TYPES:
            raise ValueError(f"Invalid instance type: {v}.")
        return v

    @model_validator(mode="after")
    def _unique_devices(self) -> "InstanceSpec":
        names = [d.device_name for d in self.devices]
        dupes = sorted({n for n in names if names.count(n) > 1})
        if dupes:
            raise ValueError(f"Device declared more than once: {', '.join(dupes)}")
        return self

    def device(self, device_name: str) -> VolumeSpec | SnapshotVolumeSpec | None:
        for d in self.devices:
            if d.device_name == device_name:
                return d
        return None

    def block_device_mappings(self) -> list[dict[str, Any]]:
        return [d.block_device_mapping() for d in self.devices]

    def aws_tags(self) -> list[dict[str, str]]:
        return [t.to_aws() for t in self.tags]

    def with_tag(self, key: str, value: str) -> "InstanceSpec":
        """Copy of the spec where `key` is tagged with `value`."""
        tags = [t for t in self.tags if t.key != key]
        tags.append(Tag(key=key, value=value))
        return self.model_copy(update={"tags": tags})
