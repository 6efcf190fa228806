from datetime import datetime, timezone

import pytest

from instancectl.errors import ApiError
from instancectl.schemas.api import Instance, RunState
from instancectl.schemas.instance import InstanceSpec


@pytest.fixture
def make_instance():
    """Factory for Instance responses as the control plane returns them."""

    def _make(run_state: RunState = RunState.RUNNING, **overrides) -> Instance:
        fields = {
            "id": "0b2c7d43-6c0b-4d4a-9d7f-0fd3f1f0e8a1",
            "name": "acc-project",
            "description": "a test",
            "hostname": "acc-host",
            "memory": 1073741824,
            "ncpus": 2,
            "project_id": "5d9c0e6a-3c0b-4d3f-8a17-bb3c4b1c3b50",
            "run_state": run_state,
            "time_created": datetime(2024, 1, 1, tzinfo=timezone.utc),
            "time_modified": datetime(2024, 1, 2, tzinfo=timezone.utc),
        }
        fields.update(overrides)
        return Instance(**fields)

    return _make


@pytest.fixture
def not_found():
    """Factory for the 404 the control plane answers for missing objects."""

    def _make() -> ApiError:
        return ApiError(404, "not found: instance", error_code="ObjectNotFound")

    return _make


@pytest.fixture
def spec() -> InstanceSpec:
    return InstanceSpec(
        project_id="5d9c0e6a-3c0b-4d3f-8a17-bb3c4b1c3b50",
        name="acc-project",
        description="a test",
        host_name="acc-host",
        memory=1073741824,
        ncpus=2,
    )
