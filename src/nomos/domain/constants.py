"""Centralized constants for the Nomos scheduler.

All magic numbers and configuration defaults live here so every layer
imports from a single source of truth.
"""

# ---------- SM-2 ease arithmetic (Anki defaults) ----------
SM2_INITIAL_EASE_FACTOR = 2.5
SM2_MIN_EASE_FACTOR = 1.3
SM2_EASE_BONUS = 0.15  # added on "easy"
SM2_EASE_PENALTY = 0.20  # removed on a lapse
SM2_HARD_PENALTY = 0.15  # removed on "hard"

# ---------- Deck defaults ----------
DEFAULT_LEARNING_STEPS_MINUTES = (1.0, 10.0)
DEFAULT_RELEARNING_STEPS_MINUTES = (10.0,)
DEFAULT_GRADUATING_INTERVAL_DAYS = 1
DEFAULT_EASY_INTERVAL_DAYS = 4
DEFAULT_EASY_BONUS = 1.3
DEFAULT_HARD_INTERVAL_FACTOR = 1.2
DEFAULT_INTERVAL_MODIFIER = 1.0
DEFAULT_LAPSE_NEW_INTERVAL_PERCENT = 0.0
DEFAULT_LAPSE_MIN_INTERVAL_DAYS = 1
DEFAULT_MAXIMUM_INTERVAL_DAYS = 36500
DEFAULT_NEW_CARDS_PER_DAY = 20
DEFAULT_REVIEWS_PER_DAY = 200

# ---------- Fuzz ----------
FUZZ_MIN_INTERVAL = 3  # intervals below this are never fuzzed
FUZZ_SHORT_INTERVAL_MAX = 7  # up to here: +/- 1 day
FUZZ_RATIO = 0.05  # beyond: +/- 5% of the interval

# ---------- Statistics ----------
MATURE_THRESHOLD_DAYS = 21

# ---------- Config ----------
DEFAULT_DECK_KEY = "default"
