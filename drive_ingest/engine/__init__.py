"""Engine components orchestrating discover → upload → verify."""

from .discovery import Discoverer, DiscoveryOutcome, DiscoverySummary
from .fingerprint import DuplicateDetector, fingerprint
from .guard import GuardedClient
from .rate_limiter import RateLimiter
from .retry import MAX_DELAY, RetryController, with_retries
from .thread_pool import WorkerPool
from .uploader import Uploader, UploadSummary
from .verifier import StopReason, VerificationPoller, VerificationSummary, map_provider_status

__all__ = [
    "Discoverer",
    "DiscoveryOutcome",
    "DiscoverySummary",
    "DuplicateDetector",
    "GuardedClient",
    "MAX_DELAY",
    "RateLimiter",
    "RetryController",
    "StopReason",
    "UploadSummary",
    "Uploader",
    "VerificationPoller",
    "VerificationSummary",
    "WorkerPool",
    "fingerprint",
    "map_provider_status",
    "with_retries",
]
