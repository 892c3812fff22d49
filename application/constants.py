"""Application-level constants."""

# Prefix of the one extra sink message sent when filtering changed the reply:
# the host discards what it rendered so far and shows the text after the marker.
FILTERED_REPLACE_MARKER = "[FILTERED_REPLACE]"

# Final fallbacks for parameter resolution
DEFAULT_MAX_TOKENS = 4096
DEFAULT_TEMPERATURE = 0.7

# Watchdog: max silence between streamed chunks
DEFAULT_STREAM_TIMEOUT_S = 30.0

DEFAULT_FEATURE = "Chat"
