"""
System Constants and Enumerations

Redis key schema, ID layout, and the small enums shared across the cache
client, the coordination primitives and the services.

Architectural Decision: Centralized constants for maintainability
- Single source of truth for key prefixes (every component agrees on the schema)
- Type-safe enums for strategy and outcome labels (also used as metric labels)
"""

from enum import Enum

# ============================================================================
# Redis Key Schema
# ============================================================================

# Cache entries
CACHE_SHOP_KEY = "cache:shop:"
CACHE_SHOPTYPE_KEY = "cache:shop-type"

# Negative cache marker (non-null, zero length)
CACHE_NULL_VALUE = ""

# Distributed locks: the lock stores its record under LOCK_KEY_PREFIX + name
LOCK_KEY_PREFIX = "lock:"
LOCK_SHOP_NAME = "shop:"
LOCK_ORDER_NAME = "order:"
LOCK_SHOPTYPE_NAME = "shop-type"

# Login / session
LOGIN_CODE_KEY = "login:code:"
LOGIN_USER_KEY = "login:token:"

# ID generator counters: icr:<tag>:<yyyy:MM:dd>
ID_COUNTER_KEY = "icr:"
ID_COUNTER_DATE_FORMAT = "%Y:%m:%d"

# Reserved for features handled outside this core
BLOG_LIKED_KEY = "blog:liked:"
FEED_KEY = "feed:"
FOLLOWS_KEY = "follows:"
SHOP_GEO_KEY = "shop:geo:"

# ============================================================================
# Logical Expiration Envelope
# ============================================================================

ENVELOPE_DATA_FIELD = "data"
ENVELOPE_EXPIRE_FIELD = "expireTime"

# ============================================================================
# ID Layout
# ============================================================================

# 2022-01-01T00:00:00Z
ID_EPOCH_SECONDS = 1640995200
ID_SEQUENCE_BITS = 32
ID_SEQUENCE_MASK = (1 << ID_SEQUENCE_BITS) - 1
ID_TIMESTAMP_MAX = (1 << 31) - 1

# ============================================================================
# Users
# ============================================================================

USER_NICK_NAME_PREFIX = "user_"
VERIFICATION_CODE_LENGTH = 6
PHONE_REGEX = r"^1([38][0-9]|4[579]|5[0-3,5-9]|6[6]|7[0135678]|9[89])\d{8}$"


# ============================================================================
# Enums
# ============================================================================


class CacheStrategy(str, Enum):
    """
    Read strategy selected per call site.

    PASS_THROUGH: negative caching, no stampede protection (low-volume keys)
    MUTEX: exclusive rebuild, readers wait for the single rebuilder
    LOGICAL_EXPIRE: stale-while-revalidate on enveloped hot keys
    """

    PASS_THROUGH = "pass_through"
    MUTEX = "mutex"
    LOGICAL_EXPIRE = "logical_expire"


class CacheOutcome(str, Enum):
    """Result of a cache lookup, used for metrics and logs."""

    HIT = "hit"
    NEGATIVE_HIT = "negative_hit"
    MISS = "miss"
    STALE = "stale"
    CORRUPT = "corrupt"


class AdmissionOutcome(str, Enum):
    """Flash-sale admission result codes."""

    SUCCESS = "success"
    VOUCHER_NOT_FOUND = "voucher_not_found"
    NOT_STARTED = "not_started"
    ENDED = "ended"
    OUT_OF_STOCK = "out_of_stock"
    ALREADY_PURCHASED = "already_purchased"
    DUPLICATE_IN_FLIGHT = "duplicate_in_flight"
