from datetime import datetime
from typing import Any

from pydantic import BaseModel, ConfigDict, Field


class Tag(BaseModel):
    model_config = ConfigDict(frozen=True, extra="forbid")

    key: str = Field(min_length=1)
    value: str

    def to_aws(self) -> dict[str, str]:
        """Shape expected by create_tags and TagSpecifications."""
        return {"Key": self.key, "Value": self.value}


class CloudInstance(BaseModel):
    model_config = ConfigDict(frozen=True)

    id: str
    state: str
    launch_time: datetime
    private_ip: str | None = None
    instance_type: str | None = None
    tags: dict[str, str] = Field(default_factory=dict)

    @property
    def ip(self) -> str | None:
        return self.private_ip

    @property
    def running(self) -> bool:
        return self.state == "running"

    @classmethod
    def from_aws(cls, data: dict[str, Any]) -> "CloudInstance":
        """Builds an instance from one element of describe_instances' Instances."""
        return cls(
            id=data["InstanceId"],
            state=data["State"]["Name"],
            launch_time=data["LaunchTime"],
            private_ip=data.get("PrivateIpAddress"),
            instance_type=data.get("InstanceType"),
            tags={t["Key"]: t["Value"] for t in data.get("Tags", [])},
        )
