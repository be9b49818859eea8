"""
Document store adapter for guestbook entries and blog comments.
"""

from typing import Any, Dict, List, Optional

import httpx

from service_edge.app.auth.token_minter import CredentialMinter
from service_edge.app.domain.models import StoredRecord, utc_now_iso
from shared.config import EdgeConfig
from shared.errors import CredentialError, UpstreamError, ValidationError
from shared.logging import get_logger
from shared.metrics import MetricsCollector


ANONYMOUS_AUTHOR = "anonymous"
SERVICE_NAME = "document store"


def format_document(doc: Dict[str, Any]) -> StoredRecord:
    """Flatten a typed-field document into a plain record."""
    fields = doc.get("fields") or {}

    def _value(name: str, kind: str) -> Optional[str]:
        tagged = fields.get(name)
        if isinstance(tagged, dict):
            value = tagged.get(kind)
            if isinstance(value, str):
                return value
        return None

    return StoredRecord(
        id=str(doc.get("name", "")).rsplit("/", 1)[-1],
        author_name=_value("name", "stringValue") or ANONYMOUS_AUTHOR,
        message_text=_value("message", "stringValue") or "",
        created_at=_value("timestamp", "timestampValue") or utc_now_iso(),
    )


def require_text(value: Any, field: str) -> str:
    if not isinstance(value, str) or not value.strip():
        raise ValidationError("Name and message are required.", details={"field": field})
    return value


class DocumentStoreClient:
    """List/create access to the document store over its REST API.

    The flat collection (guestbook) lists newest first; scoped collections
    (comments under a post) list oldest first.
    """

    def __init__(
        self,
        config: EdgeConfig,
        minter: CredentialMinter,
        http_client: httpx.AsyncClient,
        *,
        metrics: Optional[MetricsCollector] = None,
    ):
        self.config = config
        self.minter = minter
        self.metrics = metrics
        self.logger = get_logger("edge.adapters.document_store")
        self._client = http_client

    @property
    def documents_url(self) -> str:
        if not self.config.firebase_project_id:
            raise CredentialError("Document store project is not configured")
        return (
            f"{self.config.firestore_base_url.rstrip('/')}/"
            f"{self.config.firebase_project_id}/databases/(default)/documents"
        )

    def collection_url(self, scope: Optional[str] = None) -> str:
        if scope is None:
            return f"{self.documents_url}/{self.config.guestbook_collection}"
        return (
            f"{self.documents_url}/{self.config.comments_collection}/"
            f"{scope}/{self.config.comments_subcollection}"
        )

    async def list(self, scope: Optional[str] = None) -> List[StoredRecord]:
        """Return the records of the flat collection or of one scope."""
        if scope is None:
            params: Dict[str, Any] = {
                "orderBy": "timestamp desc",
                "pageSize": self.config.guestbook_page_size,
            }
        else:
            params = {"orderBy": "timestamp asc"}

        response = await self._request("GET", self.collection_url(scope), params=params)

        if response.status_code == 404 and scope is not None:
            # Scopes are created lazily by their first write, so a missing
            # parent reads as empty. A misconfigured collection path looks
            # identical from here.
            self.logger.debug("Scope has no documents yet", scope=scope)
            return []

        if response.status_code >= 400:
            raise UpstreamError(SERVICE_NAME, "GET failed", response.status_code, response.text)

        try:
            payload = response.json()
        except ValueError:
            raise UpstreamError(SERVICE_NAME, "GET returned a non-JSON response") from None
        if not isinstance(payload, dict):
            raise UpstreamError(SERVICE_NAME, "GET returned an unexpected payload")
        documents = payload.get("documents") or []
        if not isinstance(documents, list):
            raise UpstreamError(SERVICE_NAME, "GET returned an unexpected payload")
        return [format_document(doc) for doc in documents if isinstance(doc, dict)]

    async def create(
        self,
        scope: Optional[str] = None,
        author_name: Optional[str] = None,
        message_text: Optional[str] = None,
    ) -> List[StoredRecord]:
        """Write one record and return the refreshed listing."""
        author_name = require_text(author_name, "name")
        message_text = require_text(message_text, "message")

        document = {
            "fields": {
                "name": {"stringValue": author_name},
                "message": {"stringValue": message_text},
                "timestamp": {"timestampValue": utc_now_iso()},
            }
        }
        response = await self._request("POST", self.collection_url(scope), json=document)
        if response.status_code >= 400:
            raise UpstreamError(SERVICE_NAME, "POST failed", response.status_code, response.text)

        self.logger.info("Record created", scope=scope or self.config.guestbook_collection)
        return await self.list(scope)

    async def _request(self, method: str, url: str, **kwargs) -> httpx.Response:
        token = await self.minter.get_token()
        headers = {"Authorization": f"Bearer {token.value}"}
        try:
            response = await self._client.request(method, url, headers=headers, **kwargs)
        except httpx.HTTPError as exc:
            self.logger.error("Document store request failed", method=method, error=str(exc))
            raise UpstreamError(SERVICE_NAME, f"{method} failed") from exc

        if self.metrics is not None:
            self.metrics.record_upstream_request("document_store", response.status_code)
        return response
