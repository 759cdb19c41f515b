"""Centralized constants for flashsync.

Scheduling thresholds and sync defaults live here so every layer
imports from a single source of truth.
"""

# ---------- SM-2 Scheduling ----------
MIN_EASE = 1.3
MAX_EASE = 5.0
DEFAULT_EASE = 2.5
MIN_QUALITY = 0
MAX_QUALITY = 5
PASSING_QUALITY = 3
LAPSE_EASE_PENALTY = 0.2
FIRST_INTERVAL_DAYS = 1
SECOND_INTERVAL_DAYS = 6
MAX_INTERVAL_DAYS = 36500

# ---------- Quality Policy ----------
SECONDS_PER_QUALITY_STEP = 10.0
MIN_CORRECT_QUALITY = 1

# ---------- Metrics ----------
NEW_CARD_DIFFICULTY = 2.0
LEARNING_REPETITIONS = 3  # repetitions below this count as "young"
LONG_INTERVAL_DAYS = 30
MASTERY_REPETITIONS = 5
MASTERY_EASE = 2.5
MASTERY_INTERVAL_BONUS_DAYS = 7
MASTERY_INTERVAL_BONUS = 10
DEFAULT_NEW_CARD_LIMIT = 5
BASE_SECONDS_PER_CARD = 15.0
SECONDS_PER_DIFFICULTY = 5.0
DEFAULT_AVERAGE_DIFFICULTY = 3.0
RETENTION_WINDOW_DAYS = 7

# ---------- Sync ----------
SYNC_INTERVAL_SECONDS = 60.0
DEAD_LETTER_AFTER = 3
REQUEST_TIMEOUT = 30.0
REACHABILITY_TIMEOUT = 2.0
