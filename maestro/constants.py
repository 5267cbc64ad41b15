"""Shared defaults for maestro."""

DEFAULT_OPERATION = "execute"
DEFAULT_EXECUTED_BY = "system"
DEFAULT_STEP_TIMEOUT_SECONDS = 300
DEFAULT_WORKFLOW_VERSION = "1.0.0"

# Key inside ``WorkflowStep.configuration`` that selects the agent operation.
OPERATION_CONFIG_KEY = "operation"

LOG_TIMESTAMP_FORMAT = "%Y-%m-%d %H:%M:%S"
