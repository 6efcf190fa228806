from __future__ import annotations

import time
from collections.abc import Callable
from typing import Any, TypeVar

import httpx
from pydantic import ValidationError as PydanticValidationError
from tenacity import RetryError

from ..classify import is_not_found
from ..clients import ControlPlaneClient
from ..core import DISK_LIST_LIMIT, POLL_INTERVAL, RESOURCE_TYPE_NAME
from ..deadline import Deadline
from ..errors import ApiError, RemoteCallError, UnsupportedOperationError
from ..logger import logger
from ..poller import wait_for_run_state
from ..schemas.api import Disk, Instance, RunState
from ..schemas.instance import InstanceSpec, InstanceState, Operation, Timeouts
from ..translator import build_create_body

T = TypeVar("T")

# Anything the client can raise for a failed call. Timeouts are split out
# by _call before these are seen.
CLIENT_ERRORS = (ApiError, httpx.HTTPError, PydanticValidationError)


def _failed(step: str, err: Exception) -> RemoteCallError:
    return RemoteCallError(step, err, not_found=is_not_found(err))


class InstanceResource:
    """
    Create/Read/Update/Delete for one compute instance.

    Holds no per-instance state, so one controller may serve many
    instances concurrently. Calls against the same instance must not overlap.
    """

    type_name = RESOURCE_TYPE_NAME

    def __init__(
        self,
        client: ControlPlaneClient,
        poll_interval: float = POLL_INTERVAL,
        sleep: Callable[[float], None] = time.sleep,
        clock: Callable[[], float] = time.monotonic,
    ) -> None:
        self.client = client
        self.poll_interval = poll_interval
        self._sleep = sleep
        self._clock = clock

    def _deadline(self, operation: Operation, timeouts: Timeouts) -> Deadline:
        return Deadline(operation, timeouts.budget(operation), clock=self._clock)

    def _call(
        self,
        deadline: Deadline,
        step: str,
        fn: Callable[..., T],
        *args: Any,
        **kwargs: Any,
    ) -> T:
        """
        Runs one client call with whatever is left of the deadline.
        Anything that ends after the deadline is reported as a timeout,
        whatever the call itself returned or raised.
        """
        remaining = deadline.check(step)
        try:
            result = fn(*args, timeout=remaining, **kwargs)
        except httpx.TimeoutException as e:
            raise deadline.timeout(step) from e
        except CLIENT_ERRORS as e:
            if deadline.expired():
                raise deadline.timeout(step) from e
            raise
        if deadline.expired():
            raise deadline.timeout(step)
        return result

    def create(self, spec: InstanceSpec) -> InstanceState:
        """Provisions the instance. Nothing is assumed to exist on failure."""
        deadline = self._deadline("create", spec.timeouts)
        body = build_create_body(spec)

        try:
            instance = self._call(
                deadline,
                "create instance",
                self.client.instance_create,
                spec.project_id,
                body,
            )
        except CLIENT_ERRORS as e:
            raise _failed("Error creating instance", e) from e

        logger.debug(f"created instance with ID: {instance.id}")

        return InstanceState(
            **spec.model_dump(exclude={"timeouts"}),
            timeouts=spec.timeouts,
            id=instance.id,
            time_created=instance.time_created,
            time_modified=instance.time_modified,
            run_state=instance.run_state,
        )

    def read(self, state: InstanceState) -> InstanceState:
        """
        Refreshes observed fields. A missing instance is an error here: it
        means the instance drifted away and the host must decide what to do.
        """
        deadline = self._deadline("read", state.timeouts)

        try:
            instance: Instance = self._call(
                deadline, "read instance", self.client.instance_view, state.id
            )
        except CLIENT_ERRORS as e:
            raise _failed("Unable to read instance", e) from e

        logger.debug(f"read instance with ID: {instance.id}")

        # Disk and IP pool lists are not reported back by the view endpoint,
        # so the declared values are kept as they are.
        return state.model_copy(
            update={
                "description": instance.description,
                "host_name": instance.hostname,
                "id": instance.id,
                "memory": instance.memory,
                "name": instance.name,
                "ncpus": instance.ncpus,
                "project_id": instance.project_id,
                "time_created": instance.time_created,
                "time_modified": instance.time_modified,
                "run_state": instance.run_state,
            }
        )

    def update(self, state: InstanceState, spec: InstanceSpec) -> InstanceState:
        raise UnsupportedOperationError(
            "Error updating instance",
            "the control plane API currently does not support updating instances",
        )

    def delete(self, state: InstanceState) -> None:
        """
        Detaches disks, stops, waits for the stop, then deletes.

        Not-found at any step counts as already done. All steps share the one
        delete budget. A failure leaves earlier steps applied; the next delete
        picks up from there.
        """
        deadline = self._deadline("delete", state.timeouts)
        instance_id = state.id

        # 1. Dependent disks
        disks: list[Disk] = []
        try:
            page = self._call(
                deadline,
                "list attached disks",
                self.client.instance_disk_list,
                instance_id,
                limit=DISK_LIST_LIMIT,
            )
            disks = page.items
        except CLIENT_ERRORS as e:
            if not is_not_found(e):
                raise _failed("Unable to list attached disks", e) from e
        logger.debug(f"listed all attached disks from instance with ID: {instance_id}")

        # 2. Detach each listed disk
        for disk in disks:
            try:
                self._call(
                    deadline,
                    "detach disk",
                    self.client.instance_disk_detach,
                    instance_id,
                    disk.id,
                )
            except CLIENT_ERRORS as e:
                if not is_not_found(e):
                    raise _failed("Unable to detach disk", e) from e
                logger.info(f"disk {disk.id} already detached")
            logger.debug(f"detached disk with ID: {disk.id}")

        # 3. Stop
        try:
            self._call(deadline, "stop instance", self.client.instance_stop, instance_id)
        except CLIENT_ERRORS as e:
            if not is_not_found(e):
                raise _failed("Unable to stop instance", e) from e
            logger.info(f"instance {instance_id} already gone")
            return

        # 4. Wait for the stop to land
        try:
            wait_for_run_state(
                lambda: self._call(
                    deadline, "wait for stop", self.client.instance_view, instance_id
                ),
                RunState.STOPPED,
                deadline,
                interval=self.poll_interval,
                sleep=self._sleep,
            )
        except RetryError as e:
            raise deadline.timeout("wait for stop") from e
        except CLIENT_ERRORS as e:
            if not is_not_found(e):
                raise _failed("Unable to stop instance", e) from e
            logger.info(f"instance {instance_id} already gone")
            return
        logger.debug(f"stopped instance with ID: {instance_id}")

        # 5. Delete
        try:
            self._call(
                deadline, "delete instance", self.client.instance_delete, instance_id
            )
        except CLIENT_ERRORS as e:
            if not is_not_found(e):
                raise _failed("Unable to delete instance", e) from e
            logger.info(f"instance {instance_id} already deleted")
        logger.debug(f"deleted instance with ID: {instance_id}")
