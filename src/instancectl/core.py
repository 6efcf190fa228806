from datetime import timedelta

# Resource type name reported to hosts embedding the controller.
RESOURCE_TYPE_NAME = "oxide_instance"

# Budget applied to any operation whose timeouts entry is unset.
DEFAULT_TIMEOUT = timedelta(minutes=10)

# Fixed delay between run-state checks while waiting for a stop.
# Stops normally settle in low tens of seconds, so no backoff.
POLL_INTERVAL = 1.0

# Page size for the dependent disk listing. Effectively unbounded so a
# single request returns every attached disk.
DISK_LIST_LIMIT = 1_000_000_000
