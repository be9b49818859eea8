"""
Shared configuration management for the Edge Gateway.
"""

from typing import Optional

from pydantic import Field, SecretStr
from pydantic_settings import BaseSettings, SettingsConfigDict


GOOGLE_TOKEN_URL = "https://oauth2.googleapis.com/token"
DATASTORE_SCOPE = "https://www.googleapis.com/auth/datastore"


class BaseConfig(BaseSettings):
    """Base configuration class with common settings."""

    model_config = SettingsConfigDict(
        env_prefix="EDGE_",
        env_file=".env",
        case_sensitive=False,
        extra="allow",
    )

    # Environment
    env: str = "local"
    log_level: str = "info"

    # Outbound HTTP; None disables client-side timeouts entirely
    upstream_timeout: Optional[float] = None
    user_agent: str = "Edge-Gateway-Proxy"


class EdgeConfig(BaseConfig):
    """Secrets and deployment settings for the edge gateway."""

    service_name: str = "edge"
    host: str = "0.0.0.0"
    port: int = 8000

    # Document store service identity
    firebase_project_id: Optional[str] = None
    firebase_client_email: Optional[str] = None
    firebase_private_key: Optional[SecretStr] = None
    token_url: str = GOOGLE_TOKEN_URL
    datastore_scope: str = DATASTORE_SCOPE
    firestore_base_url: str = "https://firestore.googleapis.com/v1/projects"
    guestbook_collection: str = "guestbook"
    comments_collection: str = "blog_comments"
    comments_subcollection: str = "comments"
    guestbook_page_size: int = Field(default=50, ge=1)

    # Repository hosting
    github_token: Optional[SecretStr] = None
    github_api_url: str = "https://api.github.com"
    github_graphql_url: str = "https://api.github.com/graphql"

    # Edge cache
    cache_ttl_seconds: int = Field(default=86400, ge=1)
    cache_max_entries: int = Field(default=1000, ge=1)
    redis_url: Optional[str] = None

    # Contact relay
    allowed_origin: Optional[str] = None
    resend_api_key: Optional[SecretStr] = None
    resend_api_url: str = "https://api.resend.com/emails"
    sender_email: Optional[str] = None
    recipient_email: Optional[str] = None

    # Routes
    messages_path: str = "/messages"
    comments_path: str = "/comments"
    repo_data_path: str = "/repo-data"
    cache_proxy_path: str = "/cache-proxy"
    contact_path: str = "/contact"


def get_config(**overrides) -> EdgeConfig:
    """Load configuration from the environment, applying explicit overrides."""
    return EdgeConfig(**overrides)
