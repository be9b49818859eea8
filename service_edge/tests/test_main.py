"""
Unit tests for the edge gateway HTTP surface.
"""

import pytest
from fastapi.testclient import TestClient

import sys
import os
sys.path.append(os.path.join(os.path.dirname(__file__), '..', '..'))

from service_edge.app.main import EdgeGatewayService, create_app
from shared.test_helpers import ALLOWED_ORIGIN, KNOWN_USER, make_config


CONTACT_FORM = {
    "name": "Grace",
    "contact_method": "email",
    "contact_value": "grace@mail.example",
    "message": "Hello",
}


class BrokenStore:
    """Response store whose backend refuses connections."""

    async def get(self, key):
        raise ConnectionError("Connection refused")

    async def put(self, entry):
        raise ConnectionError("Connection refused")

    async def close(self):
        pass


class TestEdgeGatewayService:
    """Test cases for EdgeGatewayService."""

    def test_create_app(self, edge_config, http_client):
        """Test the application factory."""
        app = create_app(edge_config, http_client=http_client)
        assert isinstance(app.state.edge_service, EdgeGatewayService)

    def test_health_endpoint(self, client):
        """Test health endpoint."""
        response = client.get("/health")

        assert response.status_code == 200
        data = response.json()
        assert data["service"] == "edge"
        assert data["status"] == "ok"
        assert data["dependencies"] == {
            "document_store": "configured",
            "repository_host": "configured",
            "contact_relay": "configured",
            "edge_cache": "memory",
        }
        assert "X-Request-ID" in response.headers

    def test_health_reports_unconfigured(self, private_pem, http_client):
        """Test missing secrets are visible in the health report."""
        service = EdgeGatewayService(
            make_config(private_pem, github_token=None, resend_api_key=None),
            http_client=http_client,
        )
        with TestClient(service.app) as client:
            data = client.get("/health").json()

        assert data["dependencies"]["repository_host"] == "unconfigured"
        assert data["dependencies"]["contact_relay"] == "unconfigured"

    def test_metrics_endpoint(self, client):
        """Test metrics endpoint."""
        client.get("/messages")
        response = client.get("/metrics")

        assert response.status_code == 200
        assert "http_requests_total" in response.text
        assert "upstream_requests_total" in response.text

    def test_request_id_is_echoed(self, client):
        response = client.get("/health", headers={"X-Request-ID": "req-123"})
        assert response.headers["X-Request-ID"] == "req-123"


class TestCorsEnvelope:
    """Test cases for CORS handling on every response."""

    @pytest.mark.parametrize("path", ["/messages", "/comments/p1", "/repo-data", "/cache-proxy", "/contact", "/nowhere"])
    def test_preflight_never_reaches_upstreams(self, client, upstreams, path):
        """Test OPTIONS is answered locally for any path."""
        response = client.options(path)

        assert response.status_code == 204
        assert "Access-Control-Allow-Origin" in response.headers
        assert upstreams.requests == []

    def test_preflight_contact_restricted(self, client):
        response = client.options("/contact")

        assert response.headers["Access-Control-Allow-Origin"] == ALLOWED_ORIGIN
        assert response.headers["Access-Control-Allow-Methods"] == "POST, OPTIONS"

    def test_unknown_route(self, client):
        """Test unmatched paths return the not-found envelope."""
        response = client.get("/does-not-exist")

        assert response.status_code == 404
        assert response.json() == {"error": "Not Found", "code": "ROUTE_NOT_FOUND"}
        assert response.headers["Access-Control-Allow-Origin"] == "*"

    def test_wrong_method_is_not_found(self, client):
        """Test a known path with an unregistered method is not found."""
        assert client.get("/contact").status_code == 404
        assert client.delete("/messages").status_code == 404

    def test_unexpected_failure_is_generic(self, client, service, monkeypatch):
        """Test unexpected exceptions never leak details."""
        async def explode(username):
            raise RuntimeError("secret internals")

        monkeypatch.setattr(service.github_client, "pinned_repos", explode)

        response = client.get("/repo-data", params={"username": KNOWN_USER})

        assert response.status_code == 500
        assert response.json() == {"error": "Internal server error", "code": "INTERNAL_ERROR"}
        assert "secret internals" not in response.text
        assert response.headers["Access-Control-Allow-Origin"] == "*"


class TestGuestbookRoutes:
    """Test cases for guestbook and comment routes."""

    def test_list_messages(self, client, upstreams):
        upstreams.seed("guestbook", "Ada", "Hi", "2024-01-01T00:00:00.000Z")

        response = client.get("/messages")

        assert response.status_code == 200
        assert [m["name"] for m in response.json()] == ["Ada"]
        assert set(response.json()[0]) == {"id", "name", "message", "timestamp"}

    def test_create_message(self, client, upstreams):
        upstreams.seed("guestbook", "Ada", "Hi", "2024-01-01T00:00:00.000Z")

        response = client.post("/messages", json={"name": "Linus", "message": "Nice site"})

        assert response.status_code == 201
        records = response.json()
        assert records[0]["name"] == "Linus"
        assert records[0]["message"] == "Nice site"
        assert len(records) == 2

    def test_create_message_missing_fields(self, client, upstreams):
        """Test validation happens before any upstream call."""
        response = client.post("/messages", json={"name": "Linus"})

        assert response.status_code == 400
        assert response.json() == {"error": "Name and message are required.", "code": "VALIDATION_ERROR"}
        assert upstreams.requests == []

    @pytest.mark.parametrize("body", [b"{not json", b"[1, 2]"])
    def test_create_message_bad_body(self, client, upstreams, body):
        response = client.post("/messages", content=body, headers={"Content-Type": "application/json"})

        assert response.status_code == 400
        assert response.json()["code"] == "VALIDATION_ERROR"
        assert upstreams.requests == []

    def test_list_comments_for_new_post(self, client):
        response = client.get("/comments/brand-new-post")

        assert response.status_code == 200
        assert response.json() == []

    def test_create_comment(self, client, upstreams):
        response = client.post("/comments/post-1", json={"name": "Bo", "message": "First!"})

        assert response.status_code == 201
        assert response.json()[0]["message"] == "First!"
        assert "blog_comments/post-1/comments" in upstreams.documents

    def test_document_store_failure(self, client, upstreams):
        upstreams.document_store_status = 503

        response = client.get("/messages")

        assert response.status_code == 502
        assert response.json()["code"] == "UPSTREAM_ERROR"


class TestRepoDataRoutes:
    """Test cases for the repository data route."""

    def test_username_required(self, client, upstreams):
        response = client.get("/repo-data")

        assert response.status_code == 400
        assert response.json()["error"] == 'Missing "username" query parameter.'
        assert upstreams.requests == []

    def test_invalid_endpoint(self, client, upstreams):
        response = client.get("/repo-data", params={"username": KNOWN_USER, "endpoint": "secrets"})

        assert response.status_code == 400
        assert response.json()["error"] == 'Invalid "endpoint" specified.'
        assert upstreams.requests == []

    def test_pinned_is_default(self, client):
        response = client.get("/repo-data", params={"username": KNOWN_USER})

        assert response.status_code == 200
        assert response.json()[0]["repo"] == "hello-world"
        assert response.headers["Cache-Control"] == "s-maxage=3600"

    def test_stats(self, client):
        response = client.get("/repo-data", params={"username": KNOWN_USER, "endpoint": "stats"})

        assert response.status_code == 200
        assert response.json()["contributions"] == 431
        assert response.headers["Cache-Control"] == "s-maxage=43200"

    def test_repos_passthrough_forwards_query(self, client, upstreams):
        response = client.get("/repo-data", params={
            "username": KNOWN_USER, "endpoint": "repos", "per_page": "3",
        })

        assert response.status_code == 200
        assert response.json() == upstreams.repo_list
        request = upstreams.calls("api.github.com", "GET")[0]
        assert dict(request.url.params) == {"per_page": "3"}

    def test_events_passthrough(self, client):
        response = client.get("/repo-data", params={"username": KNOWN_USER, "endpoint": "events"})

        assert response.status_code == 200
        assert response.json() == [{"type": "PushEvent"}]

    def test_unknown_user(self, client):
        response = client.get("/repo-data", params={"username": "ghost-user", "endpoint": "stats"})

        assert response.status_code == 404
        assert response.json() == {"error": 'User "ghost-user" not found.', "code": "NOT_FOUND"}

    @pytest.mark.parametrize("endpoint", ["repos", "events", "stats", "pinned"])
    def test_path_segments_in_username_rejected(self, client, upstreams, endpoint):
        """Test a username cannot redirect the token-bearing request elsewhere."""
        response = client.get("/repo-data", params={
            "username": "../repos/acme/private-repo/contents/secrets.txt#",
            "endpoint": endpoint,
        })

        assert response.status_code == 400
        assert response.json() == {"error": 'Invalid "username" query parameter.', "code": "VALIDATION_ERROR"}
        assert upstreams.requests == []


class TestCacheProxyRoute:
    """Test cases for the cache proxy route."""

    def test_miss_then_hit(self, client, service, upstreams):
        """Test the cache status header flips once the background write lands."""
        target = "https://cdn.example/app.css"

        first = client.get("/cache-proxy", params={"target": target})
        client.portal.call(service.background.drain)
        second = client.get("/cache-proxy", params={"target": target})

        assert first.headers["X-Cache-Status"] == "MISS"
        assert second.headers["X-Cache-Status"] == "HIT"
        assert first.content == second.content
        assert second.headers["content-type"].startswith("text/plain")
        assert len(upstreams.calls("cdn.example")) == 1

    def test_head_request(self, client):
        response = client.head("/cache-proxy", params={"target": "https://cdn.example/app.css"})

        assert response.status_code == 200
        assert response.headers["X-Cache-Status"] == "MISS"

    def test_missing_target(self, client):
        response = client.get("/cache-proxy")

        assert response.status_code == 400
        assert response.json()["error"] == 'Missing "target" query parameter.'
        assert response.headers["Access-Control-Allow-Methods"] == "GET, HEAD, OPTIONS"

    def test_origin_error_is_relayed(self, client, service, upstreams):
        target = "https://cdn.example/gone.js"
        upstreams.origin_responses[target] = (404, b"gone", "text/plain")

        response = client.get("/cache-proxy", params={"target": target})
        client.portal.call(service.background.drain)

        assert response.status_code == 404
        assert response.content == b"gone"
        assert len(service.edge_cache.store) == 0

    def test_unreachable_cache_store_serves_from_origin(self, edge_config, http_client, upstreams):
        """Test cache backend failures degrade to origin fetches."""
        service = EdgeGatewayService(edge_config, http_client=http_client, response_store=BrokenStore())
        target = "https://cdn.example/app.css"

        with TestClient(service.app) as client:
            first = client.get("/cache-proxy", params={"target": target})
            client.portal.call(service.background.drain)
            second = client.get("/cache-proxy", params={"target": target})

        assert first.status_code == 200
        assert first.headers["X-Cache-Status"] == "MISS"
        assert second.headers["X-Cache-Status"] == "MISS"
        assert len(upstreams.calls("cdn.example")) == 2


class TestContactRoute:
    """Test cases for the contact relay route."""

    def test_send(self, client, upstreams):
        response = client.post("/contact", json=CONTACT_FORM, headers={"Origin": ALLOWED_ORIGIN})

        assert response.status_code == 200
        assert response.json() == {"success": True}
        assert response.headers["Access-Control-Allow-Origin"] == ALLOWED_ORIGIN
        assert len(upstreams.sent_emails) == 1

    def test_foreign_origin(self, client, upstreams):
        response = client.post("/contact", json=CONTACT_FORM, headers={"Origin": "https://evil.example"})

        assert response.status_code == 403
        assert response.json() == {"error": "Unauthorized request origin.", "code": "ORIGIN_NOT_ALLOWED"}
        assert upstreams.requests == []

    def test_incomplete_form(self, client):
        response = client.post(
            "/contact", json={"name": "Grace"}, headers={"Origin": ALLOWED_ORIGIN}
        )

        assert response.status_code == 400
        assert response.json()["error"].startswith("Incomplete form")

    def test_unconfigured_origin_is_server_error(self, private_pem, http_client, upstreams):
        """Test a missing allowed origin reports misconfiguration before origin checks."""
        service = EdgeGatewayService(make_config(private_pem, allowed_origin=None), http_client=http_client)

        with TestClient(service.app) as client:
            response = client.post("/contact", json=CONTACT_FORM, headers={"Origin": ALLOWED_ORIGIN})

        assert response.status_code == 500
        assert response.json() == {"error": "Mail relay is not configured.", "code": "CREDENTIAL_ERROR"}
        assert upstreams.requests == []
