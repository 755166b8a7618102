"""Constants shared across the durable workflow core."""

SNAPSHOT_SCHEMA = "durable-workflow-snapshot"
SNAPSHOT_VERSION = 1
ENGINE_TAG = "py-state-machine"

DEFAULT_MAX_TRANSITION_DEPTH = 100
DEFAULT_TIMEOUT_EVENT = "TIMEOUT"
DEFAULT_SWEEP_INTERVAL_SECONDS = 60.0

TABLE_NAME_PATTERN = r"^[a-zA-Z_][a-zA-Z0-9_]*$"
HISTORY_TABLE_SUFFIX = "_history"

WORKFLOW_STATUSES = ("active", "done", "error")
