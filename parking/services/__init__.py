"""
Data-freshness layer for upstream parking data.

Provides:
- RetryingFetcher: JSON GET with timeout, retry and backoff
- CancelSignal: Composable cancellation with an inspectable reason
- Normalizer: Tolerant mapping of upstream records
- FacilityCache: Long-lived facility metadata
- AvailabilityCache: Stale-while-revalidate availability
"""

from parking.services.errors import (
    ServiceError,
    UpstreamTransientError,
    RequestTimeoutError,
    UpstreamHardError,
    ShapeError,
    RequestCancelledError,
    UpstreamServiceError,
    InvalidInputError,
)
from parking.services.cancellation import CancelSignal
from parking.services.fetcher import RetryingFetcher
from parking.services.normalizer import normalize_availability, normalize_facility
from parking.services.cache import (
    AvailabilityCache,
    CacheEntry,
    CacheState,
    CacheStats,
    FacilityCache,
)

__all__ = [
    # Errors
    "ServiceError",
    "UpstreamTransientError",
    "RequestTimeoutError",
    "UpstreamHardError",
    "ShapeError",
    "RequestCancelledError",
    "UpstreamServiceError",
    "InvalidInputError",
    # Cancellation
    "CancelSignal",
    # Fetcher
    "RetryingFetcher",
    # Normalizer
    "normalize_facility",
    "normalize_availability",
    # Caches
    "AvailabilityCache",
    "CacheEntry",
    "CacheState",
    "CacheStats",
    "FacilityCache",
]
