from __future__ import annotations

# Strike ladder
STRIKE_DECAY_SECONDS = 7 * 24 * 60 * 60
STRIKE_TIMEOUT_MINUTES = 10

# Tone callouts + escalating-timeout sub-policy
TONE_COOLDOWN_SECONDS = 5.0
TONE_COOLDOWN_REPEAT_SECONDS = 3.0
TONE_COOLDOWN_REPEAT_AFTER_WARNINGS = 3
BEHAVIOR_RESET_SECONDS = 7 * 24 * 60 * 60
BEHAVIOR_TIMEOUT_STEP_MINUTES = 10
BEHAVIOR_TIMEOUT_MAX_MINUTES = 60
BEHAVIOR_TIMEOUT_AFTER_WARNINGS = 4

# Spam heuristics
RATE_FLOOD_BUFFER_SIZE = 10
RATE_FLOOD_MIN_MESSAGES = 5
RATE_FLOOD_WINDOW_SECONDS = 5.0
COPYPASTA_MIN_MESSAGE_CHARS = 30
COPYPASTA_MIN_SEGMENT_CHARS = 20
COPYPASTA_MIN_REPEATS = 3
COPYPASTA_WINDOW_CHARS = 60
COPYPASTA_WINDOW_STEP = 20
COPYPASTA_WINDOW_MIN_TEXT_CHARS = 120
DUPLICATE_FLOOD_MESSAGES = 3
DUPLICATE_SCAN_LIMIT = 50
DUPLICATE_MAX_AGE_SECONDS = 10 * 60
EMOJI_FLOOD_THRESHOLD = 12

# Classifier / platform calls
DEFAULT_TONE_MODEL = "gpt-4o-mini"
DEFAULT_MODERATION_MODEL = "omni-moderation-latest"
DEFAULT_EXTERNAL_TIMEOUT_SECONDS = 10.0
DISCORD_MAX_MESSAGE_LEN = 1900

# Profiling
PROFILE_EWMA_ALPHA = 0.3
PROFILE_SET_CAP = 20
PROFILE_CATEGORICAL_MIN_CONFIDENCE = 0.6
PROFILE_MAX_INPUT_CHARS = 1800
PROFILE_QUIRKS_PER_USER = 10

# Community vote / anti-raid
COMMUNITY_VOTE_EMOJI = "\U0001F6AB"
COMMUNITY_VOTE_THRESHOLD = 3
RAID_JOIN_THRESHOLD = 5
RAID_WINDOW_SECONDS = 60.0

# Housekeeping
DEFAULT_STATE_MAX_KEYS = 50_000
DEFAULT_INCIDENT_RETENTION_DAYS = 30
DEFAULT_CLEANUP_HOUR_LOCAL = 3
DEFAULT_RULES_FILENAME = "moderation_rules.yml"
