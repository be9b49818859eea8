"""
Hosted-repository adapter: GraphQL aggregations and REST passthrough.
"""

import re
from dataclasses import dataclass
from typing import Any, Dict, List, Mapping, Optional

import httpx

from service_edge.app.domain.models import RepoSummary, UserStats
from shared.config import EdgeConfig
from shared.errors import CredentialError, NotFoundError, UpstreamError, ValidationError
from shared.logging import get_logger
from shared.metrics import MetricsCollector


SERVICE_NAME = "repository host"
PINNED_LIMIT = 6
DEFAULT_LANGUAGE = "Text"
DEFAULT_LANGUAGE_COLOR = "#ededed"

STATS_CACHE_CONTROL = "s-maxage=43200"
PINNED_CACHE_CONTROL = "s-maxage=3600"
PASSTHROUGH_CACHE_CONTROL = "s-maxage=3600"

PASSTHROUGH_RESOURCES = frozenset({"repos", "events"})

USERNAME_PATTERN = re.compile(r"^[A-Za-z0-9](?:[A-Za-z0-9-]{0,38})$")

USER_STATS_QUERY = """
query UserStats($username: String!) {
  user(login: $username) {
    repositories(ownerAffiliations: OWNER, isFork: false, privacy: PUBLIC) { totalCount }
    followers { totalCount }
    following { totalCount }
    contributionsCollection {
      contributionCalendar { totalContributions }
    }
    repositoriesContributedTo(first: 1, contributionTypes: [COMMIT, ISSUE, PULL_REQUEST, REPOSITORY]) {
      totalCount
    }
  }
}
"""

PINNED_REPOS_QUERY = """
query PinnedRepos($username: String!, $first: Int!) {
  user(login: $username) {
    pinnedItems(first: $first, types: REPOSITORY) {
      nodes {
        ... on Repository {
          name
          owner { login }
          description
          url
          stargazers { totalCount }
          forks { totalCount }
          primaryLanguage { name color }
        }
      }
    }
  }
}
"""


@dataclass(frozen=True)
class RawResponse:
    """Unmodified upstream reply for passthrough resources."""

    status_code: int
    body: bytes
    content_type: Optional[str]


def validate_username(username: str) -> str:
    """Reject anything that is not a plain account login."""
    if not isinstance(username, str) or not USERNAME_PATTERN.match(username):
        raise ValidationError('Invalid "username" query parameter.')
    return username


def _total(node: Optional[Dict[str, Any]]) -> int:
    if not node:
        return 0
    return int(node.get("totalCount") or 0)


class GitHubClient:
    """Repository-hosting API client with a process-wide bearer token."""

    def __init__(
        self,
        config: EdgeConfig,
        http_client: httpx.AsyncClient,
        *,
        metrics: Optional[MetricsCollector] = None,
    ):
        self.config = config
        self.metrics = metrics
        self.logger = get_logger("edge.adapters.github")
        self._client = http_client

    def _auth_headers(self) -> Dict[str, str]:
        if self.config.github_token is None or not self.config.github_token.get_secret_value():
            raise CredentialError("Repository hosting token is not configured")
        return {
            "Authorization": f"bearer {self.config.github_token.get_secret_value()}",
            "User-Agent": self.config.user_agent,
        }

    async def user_stats(self, username: str) -> UserStats:
        """Aggregate profile counters from one composite query."""
        user = await self._query_user(USER_STATS_QUERY, {"username": username})
        return UserStats(
            public_repo_count=_total(user.get("repositories")),
            followers=_total(user.get("followers")),
            following=_total(user.get("following")),
            total_contributions=int(
                ((user.get("contributionsCollection") or {}).get("contributionCalendar") or {})
                .get("totalContributions") or 0
            ),
            contributed_repo_count=_total(user.get("repositoriesContributedTo")),
        )

    async def pinned_repos(self, username: str) -> List[RepoSummary]:
        """Return up to six pinned repositories in display order."""
        user = await self._query_user(PINNED_REPOS_QUERY, {"username": username, "first": PINNED_LIMIT})
        nodes = ((user.get("pinnedItems") or {}).get("nodes") or [])[:PINNED_LIMIT]

        repos: List[RepoSummary] = []
        for node in nodes:
            if not node:
                continue
            language = node.get("primaryLanguage") or {}
            repos.append(RepoSummary(
                owner=(node.get("owner") or {}).get("login", ""),
                name=node.get("name", ""),
                link=node.get("url", ""),
                description=node.get("description"),
                language=language.get("name") or DEFAULT_LANGUAGE,
                language_color=language.get("color") or DEFAULT_LANGUAGE_COLOR,
                stars=_total(node.get("stargazers")),
                forks=_total(node.get("forks")),
            ))
        return repos

    async def passthrough(
        self,
        username: str,
        sub_resource: str,
        params: Optional[Mapping[str, str]] = None,
    ) -> RawResponse:
        """Fetch a list/activity resource unchanged, injecting only credentials."""
        if sub_resource not in PASSTHROUGH_RESOURCES:
            raise ValueError(f"Unsupported passthrough resource: {sub_resource}")
        username = validate_username(username)

        headers = self._auth_headers()
        headers["Accept"] = "application/vnd.github.v3+json"
        url = f"{self.config.github_api_url.rstrip('/')}/users/{username}/{sub_resource}"

        try:
            response = await self._client.get(url, headers=headers, params=dict(params or {}))
        except httpx.HTTPError as exc:
            self.logger.error("REST passthrough failed", resource=sub_resource, error=str(exc))
            raise UpstreamError(SERVICE_NAME, f"GET {sub_resource} failed") from exc

        self._record(response.status_code)
        return RawResponse(
            status_code=response.status_code,
            body=response.content,
            content_type=response.headers.get("content-type"),
        )

    async def _query_user(self, query: str, variables: Dict[str, Any]) -> Dict[str, Any]:
        validate_username(variables["username"])
        payload = await self._graphql(query, variables)
        errors = payload.get("errors") or []
        user = (payload.get("data") or {}).get("user")

        if any(isinstance(e, dict) and e.get("type") == "NOT_FOUND" for e in errors) or (
            not errors and user is None
        ):
            raise NotFoundError(f'User "{variables["username"]}" not found.')

        if errors:
            self.logger.error("GraphQL query returned errors", errors=errors)
            raise UpstreamError(SERVICE_NAME, "GraphQL query returned errors")

        return user

    async def _graphql(self, query: str, variables: Dict[str, Any]) -> Dict[str, Any]:
        headers = self._auth_headers()
        try:
            response = await self._client.post(
                self.config.github_graphql_url,
                json={"query": query, "variables": variables},
                headers=headers,
            )
        except httpx.HTTPError as exc:
            self.logger.error("GraphQL request failed", error=str(exc))
            raise UpstreamError(SERVICE_NAME, "GraphQL request failed") from exc

        self._record(response.status_code)
        if response.status_code >= 400:
            raise UpstreamError(SERVICE_NAME, "GraphQL API error", response.status_code, response.text)

        try:
            payload = response.json()
        except ValueError:
            raise UpstreamError(SERVICE_NAME, "GraphQL API returned a non-JSON response") from None
        if not isinstance(payload, dict):
            raise UpstreamError(SERVICE_NAME, "GraphQL API returned an unexpected payload")
        return payload

    def _record(self, status_code: int) -> None:
        if self.metrics is not None:
            self.metrics.record_upstream_request("github", status_code)
