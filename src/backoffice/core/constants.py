"""Application-wide constants.

This module defines constants used throughout the application
to avoid magic numbers and ensure consistency.
"""

# Hash lengths
SHA256_HEX_LENGTH = 64

# String field lengths
MAX_EMAIL_LENGTH = 255
MAX_NAME_LENGTH = 255
MAX_USERNAME_LENGTH = 100
MAX_IPV6_LENGTH = 45
MAX_USER_AGENT_LENGTH = 512
MAX_ROLE_NAME_LENGTH = 100
MAX_PERMISSION_NAME_LENGTH = 100
MAX_MODULE_LENGTH = 50
MAX_DESCRIPTION_LENGTH = 255
MAX_LOCALE_LENGTH = 10
MAX_SETTING_KEY_LENGTH = 100
MAX_ACTIVITY_TYPE_LENGTH = 100

# Password requirements (upper bound; lower bound comes from runtime settings)
MAX_PASSWORD_LENGTH = 128
BCRYPT_ROUNDS = 12

# Pagination defaults
DEFAULT_PAGE_SIZE = 20
MAX_PAGE_SIZE = 100

# Token settings
ACCESS_TOKEN_JTI_LENGTH = 32

# Secret key requirements
MIN_SECRET_KEY_LENGTH = 32
DEFAULT_INSECURE_SECRET = "change-me-in-production"

# Role hierarchy
MAX_ROLE_DEPTH = 5

# Activity log
HIGH_RISK_LEVEL = 7
MAX_RISK_LEVEL = 10
ACTIVITY_BATCH_SIZE = 100
RELATED_ACTIVITY_LIMIT = 10
RELATED_ACTIVITY_WINDOW_HOURS = 24
ASYNC_EXPORT_THRESHOLD = 1000
FILTERED_VALUE = "[FILTERED]"

# Cache TTLs (seconds)
SETTINGS_CACHE_TTL = 3600
ACTIVITY_STATS_CACHE_TTL = 300
RECENT_ACTIVITY_CACHE_TTL = 60
