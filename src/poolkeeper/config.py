import json
from pathlib import Path
from typing import Any

from pydantic import BaseModel, ConfigDict, ValidationError

from .core import DEFAULT_REGION, POOL_TAG
from .exceptions import ConfigurationError
from .schemas.resources import InstanceSpec


class PoolConfig(BaseModel):
    """Contents of a pool configuration file."""

    model_config = ConfigDict(frozen=True, extra="forbid")

    region: str = DEFAULT_REGION
    instance: InstanceSpec

    def instance_spec(self, pool: str) -> InstanceSpec:
        """The worker spec, tagged into `pool` so sync can find it again."""
        return self.instance.with_tag(POOL_TAG, pool)


def load_pool_config(path: str | Path, region: str | None = None) -> PoolConfig:
    """
    Reads and validates a JSON pool configuration.
    Relative paths inside it are taken relative to the file itself.
    """
    config_path = Path(path).expanduser().resolve()
    if not config_path.is_file():
        raise ConfigurationError(f"Config file does not exist: {config_path}")

    try:
        with config_path.open("r") as f:
            data: dict[str, Any] = json.load(f)
    except ValueError as e:
        raise ConfigurationError(f"Config file is not valid JSON: {config_path}: {e}") from e

    if not isinstance(data, dict):
        raise ConfigurationError(f"Config file must hold a JSON object: {config_path}")

    if region:
        data["region"] = region

    try:
        return PoolConfig.model_validate(
            data, context={"base_dir": config_path.parent}
        )
    except ValidationError as e:
        raise ConfigurationError(f"Invalid pool configuration {config_path}: {e}") from e
