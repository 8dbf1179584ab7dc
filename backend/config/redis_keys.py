"""
Redis keys configuration for the crash game.
Centralized key management to avoid conflicts.
"""

# Game result keys
CRASH_HISTORY_KEY = "crash_history"  # Last crash points, newest first
LAST_CRASH_POINT_KEY = "last_crash_point"

# Key limits and expiration times
CRASH_HISTORY_LENGTH = 50
LAST_CRASH_POINT_TTL = 3600  # 1 hour
