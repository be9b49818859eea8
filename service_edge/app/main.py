"""
Edge gateway service: the backend-for-frontend in front of the static site.
"""

from typing import Any, Awaitable, Callable, Dict, List, Optional

import httpx
from fastapi import Request, Response

from service_edge.app.adapters.email_client import ContactRelay
from service_edge.app.adapters.firestore_client import DocumentStoreClient
from service_edge.app.adapters.github_client import (
    GitHubClient,
    PASSTHROUGH_CACHE_CONTROL,
    PINNED_CACHE_CONTROL,
    STATS_CACHE_CONTROL,
)
from service_edge.app.adapters.origin_client import OriginCacheClient
from service_edge.app.auth.token_minter import CredentialMinter
from service_edge.app.caching.background import BackgroundTasks
from service_edge.app.caching.edge_cache import EdgeCache, ResponseStore, build_response_store
from service_edge.app.domain.envelope import ResponseEnvelope
from service_edge.app.domain.models import ServiceCredential, StoredRecord
from service_edge.app.routing.router import RouteMatch, Router
from shared.base_service import BaseService
from shared.config import EdgeConfig
from shared.errors import GatewayError, ValidationError


RepoEndpoint = Callable[[str, Dict[str, str]], Awaitable[Response]]


class EdgeGatewayService(BaseService):
    """Edge gateway service implementation."""

    def __init__(
        self,
        config: Optional[EdgeConfig] = None,
        *,
        http_client: Optional[httpx.AsyncClient] = None,
        response_store: Optional[ResponseStore] = None,
    ):
        super().__init__("edge", config)

        self._owns_http_client = http_client is None
        self.http_client = http_client or httpx.AsyncClient(timeout=self.config.upstream_timeout)

        private_key = self.config.firebase_private_key
        self.credential = ServiceCredential(
            issuer_identity=self.config.firebase_client_email,
            signing_key=private_key.get_secret_value() if private_key else None,
            audience_url=self.config.token_url,
            scope=self.config.datastore_scope,
        )
        self.token_minter = CredentialMinter(self.credential, self.http_client, metrics=self.metrics)
        self.document_store = DocumentStoreClient(
            self.config, self.token_minter, self.http_client, metrics=self.metrics
        )
        self.github_client = GitHubClient(self.config, self.http_client, metrics=self.metrics)

        self.background = BackgroundTasks()
        self.edge_cache = EdgeCache(
            response_store or build_response_store(self.config.redis_url, self.config.cache_max_entries),
            metrics=self.metrics,
        )
        self.origin_client = OriginCacheClient(
            self.edge_cache,
            self.background,
            self.http_client,
            ttl_seconds=self.config.cache_ttl_seconds,
            metrics=self.metrics,
        )
        self.contact_relay = ContactRelay(self.config, self.http_client, metrics=self.metrics)

        self.envelope = ResponseEnvelope(self.config)
        self.router = self._build_router()
        self._repo_endpoints: Dict[str, RepoEndpoint] = {
            "stats": self._repo_stats,
            "pinned": self._repo_pinned,
            "repos": self._repo_list,
            "events": self._repo_events,
        }

        self._setup_envelope_middleware()
        self._setup_edge_routes()

        self.app.state.edge_service = self

    async def shutdown(self) -> None:
        """Finish pending cache writes before releasing connections."""
        pending = self.background.pending
        if pending:
            self.logger.info("Draining background tasks", pending=pending)
        await self.background.drain()
        await self.edge_cache.close()
        if self._owns_http_client:
            await self.http_client.aclose()

    def _build_router(self) -> Router:
        config = self.config
        comments = f"{config.comments_path.rstrip('/')}/{{post_id}}"
        return (
            Router()
            .add(["GET"], config.messages_path, self.list_messages, name="list_messages")
            .add(["POST"], config.messages_path, self.create_message, name="create_message")
            .add(["GET"], comments, self.list_comments, name="list_comments")
            .add(["POST"], comments, self.create_comment, name="create_comment")
            .add(["GET"], config.repo_data_path, self.get_repo_data, name="repo_data")
            .add(["GET", "HEAD"], config.cache_proxy_path, self.proxy_through_cache, name="cache_proxy")
            .add(["POST"], config.contact_path, self.send_contact, name="contact")
        )

    def _setup_envelope_middleware(self):
        """Answer preflights and stamp CORS headers on every reply."""

        @self.app.middleware("http")
        async def apply_envelope(request: Request, call_next):
            path = request.url.path
            if request.method == "OPTIONS":
                return self.envelope.preflight(path)

            response = await call_next(request)
            for name, value in self.envelope.cors_headers(path).items():
                if name not in response.headers:
                    response.headers[name] = value
            return response

    def _setup_edge_routes(self):
        """Mount the route table behind a single dispatcher."""

        @self.app.api_route(
            "/{path:path}",
            methods=["GET", "HEAD", "POST", "PUT", "PATCH", "DELETE"],
            include_in_schema=False,
        )
        async def dispatch(request: Request):
            return await self.dispatch(request)

    async def dispatch(self, request: Request) -> Response:
        path = request.url.path
        try:
            match = self.router.route(request.method, path, dict(request.query_params))
            return await match.handler(request, match)
        except GatewayError as exc:
            self.logger.warning(
                "Request failed",
                path=path,
                code=exc.code,
                status_code=exc.status_code,
                error=exc.message,
            )
            self.metrics.record_error(exc.code)
            return self.envelope.error(path, exc)
        except Exception:
            self.logger.error("Unhandled exception", path=path, exc_info=True)
            self.metrics.record_error("INTERNAL_ERROR")
            return self.envelope.internal_error(path)

    def error_response(self, request: Request, exc: GatewayError) -> Response:
        return self.envelope.error(request.url.path, exc)

    def internal_error_response(self, request: Request) -> Response:
        return self.envelope.internal_error(request.url.path)

    async def _check_dependencies(self) -> Dict[str, str]:
        config = self.config

        def _state(*values: Any) -> str:
            return "configured" if all(values) else "unconfigured"

        return {
            "document_store": _state(
                config.firebase_project_id, config.firebase_client_email, config.firebase_private_key
            ),
            "repository_host": _state(config.github_token),
            "contact_relay": _state(
                config.resend_api_key, config.sender_email, config.recipient_email, config.allowed_origin
            ),
            "edge_cache": "redis" if config.redis_url else "memory",
        }

    async def _json_body(self, request: Request) -> Dict[str, Any]:
        try:
            body = await request.json()
        except ValueError:
            raise ValidationError("Request body must be valid JSON.") from None
        if not isinstance(body, dict):
            raise ValidationError("Request body must be a JSON object.")
        return body

    def _records(self, request: Request, records: List[StoredRecord], status_code: int = 200) -> Response:
        return self.envelope.json(request.url.path, [r.to_dict() for r in records], status_code=status_code)

    # Guestbook and comments

    async def list_messages(self, request: Request, match: RouteMatch) -> Response:
        return self._records(request, await self.document_store.list())

    async def create_message(self, request: Request, match: RouteMatch) -> Response:
        body = await self._json_body(request)
        records = await self.document_store.create(
            author_name=body.get("name"), message_text=body.get("message")
        )
        return self._records(request, records, status_code=201)

    async def list_comments(self, request: Request, match: RouteMatch) -> Response:
        records = await self.document_store.list(match.path_params["post_id"])
        return self._records(request, records)

    async def create_comment(self, request: Request, match: RouteMatch) -> Response:
        body = await self._json_body(request)
        records = await self.document_store.create(
            match.path_params["post_id"],
            author_name=body.get("name"),
            message_text=body.get("message"),
        )
        return self._records(request, records, status_code=201)

    # Repository data

    async def get_repo_data(self, request: Request, match: RouteMatch) -> Response:
        username = match.query.get("username")
        if not username:
            raise ValidationError('Missing "username" query parameter.')

        endpoint = match.query.get("endpoint") or "pinned"
        handler = self._repo_endpoints.get(endpoint)
        if handler is None:
            raise ValidationError('Invalid "endpoint" specified.', details={"endpoint": endpoint})

        extra = {k: v for k, v in match.query.items() if k not in ("username", "endpoint")}
        return await handler(username, extra)

    async def _repo_stats(self, username: str, params: Dict[str, str]) -> Response:
        stats = await self.github_client.user_stats(username)
        return self.envelope.json(
            self.config.repo_data_path, stats.to_dict(), cache_control=STATS_CACHE_CONTROL
        )

    async def _repo_pinned(self, username: str, params: Dict[str, str]) -> Response:
        repos = await self.github_client.pinned_repos(username)
        return self.envelope.json(
            self.config.repo_data_path, [r.to_dict() for r in repos], cache_control=PINNED_CACHE_CONTROL
        )

    async def _repo_list(self, username: str, params: Dict[str, str]) -> Response:
        return await self._repo_passthrough(username, "repos", params)

    async def _repo_events(self, username: str, params: Dict[str, str]) -> Response:
        return await self._repo_passthrough(username, "events", params)

    async def _repo_passthrough(self, username: str, resource: str, params: Dict[str, str]) -> Response:
        raw = await self.github_client.passthrough(username, resource, params)
        return self.envelope.passthrough(
            self.config.repo_data_path,
            raw.body,
            raw.status_code,
            raw.content_type,
            {"Cache-Control": PASSTHROUGH_CACHE_CONTROL},
        )

    # Cache proxy

    async def proxy_through_cache(self, request: Request, match: RouteMatch) -> Response:
        entry, outcome = await self.origin_client.fetch_through_cache(
            match.query.get("target"), request.headers
        )
        headers = {k: v for k, v in entry.headers.items() if k.lower() != "content-type"}
        headers["X-Cache-Status"] = outcome
        return self.envelope.passthrough(
            request.url.path, entry.body, entry.status_code, entry.content_type, headers
        )

    # Contact relay

    async def send_contact(self, request: Request, match: RouteMatch) -> Response:
        origin = request.headers.get("origin")
        self.contact_relay.require_configuration()
        self.contact_relay.check_origin(origin)
        body = await self._json_body(request)
        result = await self.contact_relay.send(origin, body)
        return self.envelope.json(request.url.path, result)


def create_app(config: Optional[EdgeConfig] = None, **kwargs):
    """Create FastAPI application."""
    service = EdgeGatewayService(config, **kwargs)
    return service.app


if __name__ == "__main__":
    service = EdgeGatewayService()
    service.run()
