"""Shared defaults for weaveflow."""

DEFAULT_STORE_CAPACITY = 100
DEFAULT_LIST_LIMIT = 50
DEFAULT_WORKFLOW_LIST_LIMIT = 20

DEFAULT_PARALLEL_CONCURRENCY = 4
DEFAULT_DEADLINE_SECONDS = 300.0

DEFAULT_HTTP_TIMEOUT = 30.0
DEFAULT_GENERATION_MODEL = "openai:gpt-4o-mini"
DEFAULT_MAX_TOKENS = 150
DEFAULT_TEMPERATURE = 0.7

# Step id used for errors that belong to the run rather than a single step.
WORKFLOW_ERROR_STEP_ID = "workflow"

INPUT_NAMESPACE = "input"
STEPS_NAMESPACE = "steps"
RESERVED_STEP_IDS = frozenset({INPUT_NAMESPACE, STEPS_NAMESPACE})

MAX_WORKFLOW_DEPTH = 8
