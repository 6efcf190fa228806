import re
from datetime import datetime, timedelta
from typing import Any, Literal

from pydantic import BaseModel, ConfigDict, Field, field_validator

from ..core import DEFAULT_TIMEOUT
from .api import RunState

Operation = Literal["create", "read", "update", "delete"]

# Go-style durations: "90s", "3m", "1h30m", "1.5h", "250ms"
_DURATION_PART = re.compile(r"(\d+(?:\.\d*)?|\.\d+)(ns|us|µs|ms|s|m|h)")
_DURATION = re.compile(rf"(?:{_DURATION_PART.pattern})+")

_UNIT_SECONDS = {
    "ns": 1e-9,
    "us": 1e-6,
    "µs": 1e-6,
    "ms": 1e-3,
    "s": 1.0,
    "m": 60.0,
    "h": 3600.0,
}


def parse_duration(value: str) -> timedelta:
    """
    Parses a duration such as "1h30m" into a timedelta.
    Raises ValueError on anything that is not a sequence of number+unit pairs.
    """
    if not _DURATION.fullmatch(value):
        raise ValueError(f"invalid duration {value!r}")
    seconds = sum(
        float(num) * _UNIT_SECONDS[unit] for num, unit in _DURATION_PART.findall(value)
    )
    return timedelta(seconds=seconds)


class Timeouts(BaseModel):
    """Per-operation budgets. Update has no entry: it is never attempted."""

    model_config = ConfigDict(frozen=True)

    create: timedelta | None = None
    read: timedelta | None = None
    delete: timedelta | None = None

    @field_validator("create", "read", "delete", mode="before")
    @classmethod
    def _parse_go_duration(cls, v: Any) -> Any:
        if isinstance(v, str) and _DURATION.fullmatch(v.strip()):
            return parse_duration(v.strip())
        return v

    def budget(
        self, operation: Operation, default: timedelta = DEFAULT_TIMEOUT
    ) -> timedelta:
        if operation == "update":
            return default
        value: timedelta | None = getattr(self, operation)
        return value if value is not None else default


class InstanceSpec(BaseModel):
    # Operations hand back new copies; declared and observed records never change
    model_config = ConfigDict(frozen=True)

    project_id: str = Field(description="ID of the project that will contain the instance")
    name: str
    description: str
    host_name: str
    memory: int = Field(description="Instance memory in bytes")
    ncpus: int
    start_on_create: bool = True
    attach_to_disks: list[str] = Field(
        default_factory=list, description='Quoted disk names, e.g. "\\"disk-1\\""'
    )
    external_ips: list[str] = Field(
        default_factory=list, description="Quoted IP pool names"
    )
    user_data: str | None = Field(
        default=None, description="Base64 (RFC 4648 section 4), max 32 KiB unencoded"
    )
    timeouts: Timeouts = Field(default_factory=Timeouts)


class InstanceState(InstanceSpec):
    id: str
    time_created: datetime
    time_modified: datetime
    run_state: RunState | None = None
