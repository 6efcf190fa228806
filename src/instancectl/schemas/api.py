"""Wire models for the control-plane instance endpoints."""

from datetime import datetime
from enum import Enum
from typing import Literal

from pydantic import BaseModel, Field


class RunState(str, Enum):
    CREATING = "creating"
    STARTING = "starting"
    RUNNING = "running"
    STOPPING = "stopping"
    STOPPED = "stopped"
    REBOOTING = "rebooting"
    MIGRATING = "migrating"
    REPAIRING = "repairing"
    FAILED = "failed"
    DESTROYED = "destroyed"


class InstanceDiskAttachment(BaseModel):
    name: str
    type: Literal["attach"] = "attach"


class ExternalIpCreate(BaseModel):
    pool_name: str
    type: Literal["ephemeral"] = "ephemeral"


class NetworkInterfaceAttachment(BaseModel):
    type: Literal["none"] = "none"


class InstanceCreate(BaseModel):
    name: str
    description: str
    hostname: str
    memory: int = Field(description="Bytes")
    ncpus: int
    start: bool = True
    disks: list[InstanceDiskAttachment] = Field(default_factory=list)
    external_ips: list[ExternalIpCreate] = Field(default_factory=list)
    network_interfaces: NetworkInterfaceAttachment = Field(
        default_factory=NetworkInterfaceAttachment
    )
    user_data: str = ""


class Instance(BaseModel):
    id: str
    name: str
    description: str
    hostname: str
    memory: int
    ncpus: int
    project_id: str
    run_state: RunState
    time_created: datetime
    time_modified: datetime


class DiskState(BaseModel):
    state: str
    instance: str | None = None


class Disk(BaseModel):
    id: str
    name: str
    description: str = ""
    size: int | None = None
    state: DiskState | None = None


class DiskResultsPage(BaseModel):
    items: list[Disk] = Field(default_factory=list)
    next_page: str | None = None


class ErrorBody(BaseModel):
    message: str
    error_code: str | None = None
    request_id: str | None = None
