"""
Centralised constants for the Watch Progress tracker.

All tolerances, thresholds and default values live here so they can be
imported by any module without circular dependencies.
"""

# ── Version ──────────────────────────────────────────────────────
APP_VERSION = "0.4.0"

# ── Default paths ────────────────────────────────────────────────
DEFAULT_CONFIG_PATH = "config.json"
DEFAULT_DB_FILENAME = "watch_progress.db"

# ── Interval tracking ────────────────────────────────────────────
ADJACENCY_TOLERANCE_SECONDS = 0.1  # gap still treated as continuous when merging
JUMP_THRESHOLD_SECONDS = 1.5  # forward delta between updates classified as a skip
UPDATE_INTERVAL_MS = 250  # minimum wall-clock gap between processed time updates

# ── User commands ────────────────────────────────────────────────
MIDPOINT_FRACTION = 0.5
REPLAY_PAUSE_DELAY_SECONDS = 20.0

# ── Persistence ──────────────────────────────────────────────────
STORAGE_KEY_PREFIX = "video-progress-"
NEVER_SAVED = "Never"
LAST_SAVED_FORMAT = "%m/%d/%Y, %I:%M:%S %p"
STORAGE_BACKENDS = frozenset({"sqlite", "memory"})

# ── User-facing messages ─────────────────────────────────────────
MSG_SAVED = "Progress saved successfully!"
MSG_SAVE_FAILED = "Could not save progress: {error}"
MSG_RESET_CONFIRM = "Are you sure you want to reset all progress? This cannot be undone."
MSG_RESET_DONE = "Progress has been reset."
MSG_ERASE_FAILED = "Progress was reset, but the saved copy could not be erased: {error}"
MSG_NO_INTERVALS = "No intervals recorded yet"

# ── Logging ──────────────────────────────────────────────────────
LOG_MAX_BYTES = 10 * 1024 * 1024  # 10 MB per log file
LOG_BACKUP_COUNT = 5

# ── Web surface ──────────────────────────────────────────────────
NOTIFICATION_BUFFER_SIZE = 20
ERROR_DISPLAY_LIMIT = 50
HEALTH_CHECK_KEY = "watchprogress-healthz"
