"""
Domain records exchanged between the gateway's adapters and its HTTP surface.
"""

from __future__ import annotations

import time
from dataclasses import dataclass, field
from datetime import datetime, timezone
from typing import Any, Dict, Optional


CACHE_HIT = "HIT"
CACHE_MISS = "MISS"


def utc_now_iso() -> str:
    """Current UTC time as ISO-8601 with millisecond precision and a Z suffix."""
    return datetime.now(timezone.utc).isoformat(timespec="milliseconds").replace("+00:00", "Z")


@dataclass(frozen=True)
class ServiceCredential:
    """Static service-identity configuration used to mint access tokens."""

    issuer_identity: Optional[str]
    signing_key: Optional[str] = field(repr=False)
    audience_url: str
    scope: str


@dataclass(frozen=True)
class AccessToken:
    """Short-lived bearer token issued by the authorization server."""

    value: str = field(repr=False)
    expires_at: float

    def is_usable(self, now: float, safety_margin: float) -> bool:
        return now < self.expires_at - safety_margin


@dataclass(frozen=True)
class StoredRecord:
    """A guestbook entry or blog comment."""

    id: str
    author_name: str
    message_text: str
    created_at: str

    def to_dict(self) -> Dict[str, Any]:
        return {
            "id": self.id,
            "name": self.author_name,
            "message": self.message_text,
            "timestamp": self.created_at,
        }


@dataclass(frozen=True)
class RepoSummary:
    """Projection of a pinned repository."""

    owner: str
    name: str
    link: str
    description: Optional[str]
    language: str
    language_color: str
    stars: int
    forks: int

    def to_dict(self) -> Dict[str, Any]:
        return {
            "owner": self.owner,
            "repo": self.name,
            "link": self.link,
            "description": self.description,
            "language": self.language,
            "languageColor": self.language_color,
            "stars": self.stars,
            "forks": self.forks,
        }


@dataclass(frozen=True)
class UserStats:
    """Aggregated profile counters for a repository-hosting user."""

    public_repo_count: int
    followers: int
    following: int
    total_contributions: int
    contributed_repo_count: int

    def to_dict(self) -> Dict[str, Any]:
        return {
            "publicRepos": self.public_repo_count,
            "followers": self.followers,
            "following": self.following,
            "contributions": self.total_contributions,
            "repoContributions": self.contributed_repo_count,
        }


@dataclass(frozen=True)
class CacheEntry:
    """A complete HTTP response held by the edge cache."""

    key: str
    body: bytes = field(repr=False)
    headers: Dict[str, str]
    status_code: int = 200
    stored_at: float = field(default_factory=time.time)
    ttl: int = 86400

    def is_fresh(self, now: float) -> bool:
        return now < self.stored_at + self.ttl

    @property
    def content_type(self) -> Optional[str]:
        for name, value in self.headers.items():
            if name.lower() == "content-type":
                return value
        return None


@dataclass(frozen=True)
class ContactMessage:
    """Contact-form submission relayed by e-mail."""

    name: str
    contact_method: str
    contact_value: str
    message: str
