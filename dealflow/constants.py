"""Default bounds shared across the orchestration pipeline."""

DEFAULT_RULES_MAX_AGE_SECONDS = 3600
DEFAULT_SNAPSHOT_MAX_AGE_SECONDS = 300
DEFAULT_HISTORY_LIMIT = 20
DEFAULT_PROMPT_HISTORY_TURNS = 5
DEFAULT_PROMPT_PREVIEW_CHARS = 100

DEFAULT_STEP_TIMEOUT_SECONDS = 30.0
DEFAULT_MAX_STEP_RETRIES = 3
DEFAULT_BACKOFF_BASE_MS = 1000
DEFAULT_WORKFLOW_RETENTION_MINUTES = 60

DEFAULT_TOOL_HISTORY_LIMIT = 50
RATE_LIMIT_WINDOW_SECONDS = 60

FALLBACK_CONFIDENCE = 0.3
DEFAULT_CONFIDENCE = 0.5

THINK_TOOL_NAME = "think"
WORKFLOW_TOOL_NAME = "run_workflow"

AGENT_VERSION = "2.0.0"
