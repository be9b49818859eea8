"""
Adapters package for the edge gateway.

One HTTP client wrapper per upstream (document store, repository host,
arbitrary origins, e-mail API). These adapters encapsulate:

- Base URLs and request shapes
- Credential injection
- Error handling that maps to shared errors

Adapters never retry; a failed upstream call is surfaced to the caller.
"""

from .email_client import ContactRelay
from .firestore_client import DocumentStoreClient
from .github_client import GitHubClient
from .origin_client import OriginCacheClient

__all__ = [
    "ContactRelay",
    "DocumentStoreClient",
    "GitHubClient",
    "OriginCacheClient",
]
