import time

import httpx
import pytest

from instancectl.clients import ControlPlaneClient
from instancectl.core import DISK_LIST_LIMIT
from instancectl.errors import (
    ApiError,
    OperationTimeoutError,
    RemoteCallError,
    UnsupportedOperationError,
    ValidationError,
)
from instancectl.resources.instance import InstanceResource
from instancectl.schemas.api import Disk, DiskResultsPage, RunState
from instancectl.schemas.instance import InstanceState


@pytest.fixture
def client(mocker):
    return mocker.Mock(spec=ControlPlaneClient)


@pytest.fixture
def sleep(mocker):
    return mocker.Mock()


@pytest.fixture
def resource(client, sleep):
    return InstanceResource(client, sleep=sleep)


@pytest.fixture
def state(spec, make_instance):
    inst = make_instance()
    return InstanceState(
        **spec.model_dump(),
        id=inst.id,
        time_created=inst.time_created,
        time_modified=inst.time_modified,
    )


def _call_names(client):
    return [c[0] for c in client.mock_calls]


# Create


def test_create_then_read_round_trip(resource, client, spec, make_instance):
    client.instance_create.return_value = make_instance()
    client.instance_view.return_value = make_instance()

    created = resource.create(spec)

    assert created.id == "0b2c7d43-6c0b-4d4a-9d7f-0fd3f1f0e8a1"
    assert created.start_on_create is True
    assert created.time_created.year == 2024
    assert created.time_modified.day == 2

    body = client.instance_create.call_args[0][1]
    assert body.start is True
    assert body.network_interfaces.type == "none"
    assert client.instance_create.call_args[0][0] == spec.project_id

    refreshed = resource.read(created)
    assert refreshed.name == "acc-project"
    assert refreshed.description == "a test"
    assert refreshed.memory == 1073741824
    assert refreshed.ncpus == 2


def test_create_passes_remaining_budget(resource, client, spec, make_instance):
    client.instance_create.return_value = make_instance()

    resource.create(spec)

    timeout = client.instance_create.call_args.kwargs["timeout"]
    assert 0 < timeout <= 600


def test_create_rejects_malformed_disk_before_any_call(resource, client, spec):
    spec = spec.model_copy(update={"attach_to_disks": ['"disk-1"', "disk-2"]})

    with pytest.raises(ValidationError) as exc:
        resource.create(spec)

    assert "disk" in exc.value.summary
    assert client.mock_calls == []


def test_create_rejects_malformed_ip_pool_before_any_call(resource, client, spec):
    spec = spec.model_copy(update={"external_ips": ['"default']})

    with pytest.raises(ValidationError):
        resource.create(spec)

    client.instance_create.assert_not_called()


def test_create_api_failure(resource, client, spec):
    client.instance_create.side_effect = ApiError(400, "name already in use")

    with pytest.raises(RemoteCallError) as exc:
        resource.create(spec)

    assert exc.value.step == "Error creating instance"
    assert "name already in use" in str(exc.value)


def test_create_transport_timeout_is_a_timeout(resource, client, spec):
    client.instance_create.side_effect = httpx.ReadTimeout("slow")

    with pytest.raises(OperationTimeoutError) as exc:
        resource.create(spec)

    assert exc.value.operation == "create"


# Read


def test_read_refreshes_observed_fields(resource, client, state, make_instance):
    client.instance_view.return_value = make_instance(
        RunState.STOPPED, description="changed remotely", ncpus=4
    )

    refreshed = resource.read(state)

    assert refreshed.description == "changed remotely"
    assert refreshed.ncpus == 4
    assert refreshed.run_state == RunState.STOPPED
    # declared-only fields are kept
    assert refreshed.start_on_create is True
    assert refreshed.timeouts == state.timeouts
    client.instance_view.assert_called_once()
    assert client.instance_view.call_args[0][0] == state.id


def test_read_not_found_is_an_error(resource, client, state, not_found):
    client.instance_view.side_effect = not_found()

    with pytest.raises(RemoteCallError) as exc:
        resource.read(state)

    assert exc.value.not_found is True
    assert exc.value.step == "Unable to read instance"


# Update


def test_update_always_fails_without_remote_calls(resource, client, state, spec):
    with pytest.raises(UnsupportedOperationError):
        resource.update(state, spec.model_copy(update={"ncpus": 8}))

    assert client.mock_calls == []


# Delete


def test_delete_full_sequence(resource, client, state, make_instance, sleep):
    client.instance_disk_list.return_value = DiskResultsPage(
        items=[Disk(id="disk-a", name="a"), Disk(id="disk-b", name="b")]
    )
    client.instance_view.side_effect = [
        make_instance(RunState.STOPPING),
        make_instance(RunState.STOPPED),
    ]

    resource.delete(state)

    assert _call_names(client) == [
        "instance_disk_list",
        "instance_disk_detach",
        "instance_disk_detach",
        "instance_stop",
        "instance_view",
        "instance_view",
        "instance_delete",
    ]
    assert client.instance_disk_list.call_args.kwargs["limit"] == DISK_LIST_LIMIT
    detached = [c[0][1] for c in client.instance_disk_detach.call_args_list]
    assert detached == ["disk-a", "disk-b"]
    sleep.assert_called_once_with(1.0)


def test_delete_detaches_only_listed_disks(resource, client, state, make_instance):
    client.instance_disk_list.return_value = DiskResultsPage(items=[])
    client.instance_view.return_value = make_instance(RunState.STOPPED)

    resource.delete(state)

    client.instance_disk_detach.assert_not_called()
    client.instance_delete.assert_called_once()


def test_delete_twice_second_sees_not_found(
    resource, client, state, make_instance, not_found
):
    client.instance_disk_list.return_value = DiskResultsPage(items=[])
    client.instance_view.return_value = make_instance(RunState.STOPPED)
    resource.delete(state)

    client.reset_mock(return_value=True, side_effect=True)
    client.instance_disk_list.side_effect = not_found()
    client.instance_stop.side_effect = not_found()

    assert resource.delete(state) is None
    client.instance_disk_detach.assert_not_called()
    client.instance_view.assert_not_called()
    client.instance_delete.assert_not_called()


def test_delete_detach_not_found_continues(
    resource, client, state, make_instance, not_found
):
    client.instance_disk_list.return_value = DiskResultsPage(
        items=[Disk(id="disk-a", name="a"), Disk(id="disk-b", name="b")]
    )
    client.instance_disk_detach.side_effect = [not_found(), None]
    client.instance_view.return_value = make_instance(RunState.STOPPED)

    resource.delete(state)

    assert client.instance_disk_detach.call_count == 2
    client.instance_delete.assert_called_once()


def test_delete_list_failure_aborts(resource, client, state):
    client.instance_disk_list.side_effect = ApiError(500, "internal error")

    with pytest.raises(RemoteCallError) as exc:
        resource.delete(state)

    assert exc.value.step == "Unable to list attached disks"
    assert exc.value.not_found is False
    assert _call_names(client) == ["instance_disk_list"]


def test_delete_detach_failure_aborts(resource, client, state):
    client.instance_disk_list.return_value = DiskResultsPage(
        items=[Disk(id="disk-a", name="a"), Disk(id="disk-b", name="b")]
    )
    client.instance_disk_detach.side_effect = ApiError(409, "disk busy")

    with pytest.raises(RemoteCallError) as exc:
        resource.delete(state)

    assert exc.value.step == "Unable to detach disk"
    # stops at the failing disk; the first detach stays applied remotely
    assert client.instance_disk_detach.call_count == 1
    client.instance_stop.assert_not_called()


def test_delete_stop_failure_aborts(resource, client, state):
    client.instance_disk_list.return_value = DiskResultsPage(items=[])
    client.instance_stop.side_effect = ApiError(503, "unavailable")

    with pytest.raises(RemoteCallError) as exc:
        resource.delete(state)

    assert exc.value.step == "Unable to stop instance"
    client.instance_view.assert_not_called()
    client.instance_delete.assert_not_called()


def test_delete_poll_not_found_short_circuits(resource, client, state, not_found):
    client.instance_disk_list.return_value = DiskResultsPage(items=[])
    client.instance_view.side_effect = not_found()

    resource.delete(state)

    client.instance_delete.assert_not_called()


def test_delete_poll_error_is_fatal(resource, client, state):
    client.instance_disk_list.return_value = DiskResultsPage(items=[])
    client.instance_view.side_effect = ApiError(500, "boom")

    with pytest.raises(RemoteCallError) as exc:
        resource.delete(state)

    assert exc.value.step == "Unable to stop instance"
    client.instance_delete.assert_not_called()


def test_delete_final_not_found_is_success(
    resource, client, state, make_instance, not_found
):
    client.instance_disk_list.return_value = DiskResultsPage(items=[])
    client.instance_view.return_value = make_instance(RunState.STOPPED)
    client.instance_delete.side_effect = not_found()

    assert resource.delete(state) is None


def test_delete_final_failure_is_fatal(resource, client, state, make_instance):
    client.instance_disk_list.return_value = DiskResultsPage(items=[])
    client.instance_view.return_value = make_instance(RunState.STOPPED)
    client.instance_delete.side_effect = ApiError(400, "instance is running")

    with pytest.raises(RemoteCallError) as exc:
        resource.delete(state)

    assert exc.value.step == "Unable to delete instance"


def test_delete_times_out_when_never_stopped(client, state, make_instance):
    # Real clock and sleep with a tiny budget.
    resource = InstanceResource(client, poll_interval=0.02)
    state = InstanceState.model_validate(
        {**state.model_dump(), "timeouts": {"delete": "200ms"}}
    )
    client.instance_disk_list.return_value = DiskResultsPage(items=[])
    client.instance_view.return_value = make_instance(RunState.STOPPING)

    started = time.monotonic()
    with pytest.raises(OperationTimeoutError) as exc:
        resource.delete(state)
    elapsed = time.monotonic() - started

    assert exc.value.operation == "delete"
    assert elapsed < 0.2 + 0.15
    assert client.instance_view.call_count >= 2
    client.instance_delete.assert_not_called()


def test_delete_budget_is_shared_across_steps(client, state, make_instance):
    # A slow detach shortens the time left to wait for the stop.
    resource = InstanceResource(client, poll_interval=0.02)
    state = InstanceState.model_validate(
        {**state.model_dump(), "timeouts": {"delete": "250ms"}}
    )
    client.instance_disk_list.return_value = DiskResultsPage(
        items=[Disk(id="disk-a", name="a")]
    )
    client.instance_disk_detach.side_effect = lambda *a, **kw: time.sleep(0.15)
    client.instance_view.return_value = make_instance(RunState.STOPPING)

    started = time.monotonic()
    with pytest.raises(OperationTimeoutError) as exc:
        resource.delete(state)
    elapsed = time.monotonic() - started

    assert exc.value.operation == "delete"
    assert elapsed < 0.25 + 0.15
    client.instance_stop.assert_called_once()
    client.instance_delete.assert_not_called()


def test_delete_slow_detach_past_budget_is_a_timeout(client, state):
    # The call returned, but only after the budget was spent.
    resource = InstanceResource(client)
    state = InstanceState.model_validate(
        {**state.model_dump(), "timeouts": {"delete": "100ms"}}
    )
    client.instance_disk_list.return_value = DiskResultsPage(
        items=[Disk(id="disk-a", name="a")]
    )
    client.instance_disk_detach.side_effect = lambda *a, **kw: time.sleep(0.15)

    with pytest.raises(OperationTimeoutError) as exc:
        resource.delete(state)

    assert exc.value.step == "detach disk"
    client.instance_stop.assert_not_called()


def test_remote_failure_after_budget_is_a_timeout(client, state):
    resource = InstanceResource(client)
    state = InstanceState.model_validate(
        {**state.model_dump(), "timeouts": {"read": "50ms"}}
    )

    def slow_failure(*args, **kwargs):
        time.sleep(0.1)
        raise ApiError(503, "service unavailable")

    client.instance_view.side_effect = slow_failure

    with pytest.raises(OperationTimeoutError) as exc:
        resource.read(state)

    assert exc.value.operation == "read"
    assert isinstance(exc.value.__cause__, ApiError)
