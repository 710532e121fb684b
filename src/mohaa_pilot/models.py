"""Centralized defaults for the automation engine and its collaborators."""

# Condition polling
CONDITION_POLL_INTERVAL_MS = 200
DEFAULT_CONDITION_TIMEOUT_MS = 30000

# Console buffer
CONSOLE_BUFFER_LINES = 10000
CONSOLE_SEARCH_LINES = 100  # recent lines scanned by console_pattern conditions
DEFAULT_COMMAND_TIMEOUT_MS = 5000

# Screen matching
DEFAULT_PIXEL_TOLERANCE = 10
DEFAULT_IMAGE_THRESHOLD = 0.9
PIXEL_POLL_INTERVAL_MS = 200
IMAGE_POLL_INTERVAL_MS = 500

# Action defaults
DEFAULT_WAIT_MS = 1000
DEFAULT_WAIT_TIMEOUT_MS = 30000
DEFAULT_SCROLL_CLICKS = 3
DEFAULT_TYPE_DELAY_MS = 12

# Process lifecycle
STARTUP_TIMEOUT_MS = 30000
STARTUP_GRACE_MS = 5000
STOP_GRACE_MS = 5000
RESTART_PAUSE_MS = 1000

# Default window resolution used by the script builders
DEFAULT_RESOLUTION = (1280, 720)

# Run ids
RUN_ID_PREFIX = "MP-RUN-"
