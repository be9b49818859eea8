"""
Static route table mapping inbound requests to adapter operations.
"""

from __future__ import annotations

import re
from dataclasses import dataclass, field
from typing import Any, Awaitable, Callable, Dict, Iterable, List, Mapping, Pattern, Tuple

from shared.errors import RouteNotFound


Handler = Callable[..., Awaitable[Any]]

_PARAM = re.compile(r"\{([A-Za-z_][A-Za-z0-9_]*)\}")
SEGMENT_PATTERN = r"[A-Za-z0-9_-]+"


def compile_pattern(pattern: str) -> Pattern[str]:
    """Turn ``/comments/{post_id}`` into an anchored regex with named groups."""
    parts: List[str] = []
    position = 0
    for param in _PARAM.finditer(pattern):
        parts.append(re.escape(pattern[position:param.start()]))
        parts.append(f"(?P<{param.group(1)}>{SEGMENT_PATTERN})")
        position = param.end()
    parts.append(re.escape(pattern[position:]))
    return re.compile("^" + "".join(parts) + "$")


@dataclass(frozen=True)
class Route:
    name: str
    pattern: str
    methods: Tuple[str, ...]
    handler: Handler = field(repr=False, compare=False)
    regex: Pattern[str] = field(repr=False, compare=False)


@dataclass(frozen=True)
class RouteMatch:
    route: Route
    path_params: Dict[str, str]
    query: Mapping[str, str]

    @property
    def handler(self) -> Handler:
        return self.route.handler


class Router:
    """Ordered table of route patterns; the first match wins."""

    def __init__(self, routes: Iterable[Route] = ()):
        self._routes: List[Route] = list(routes)

    def add(self, methods: Iterable[str], pattern: str, handler: Handler, *, name: str) -> "Router":
        self._routes.append(Route(
            name=name,
            pattern=pattern,
            methods=tuple(m.upper() for m in methods),
            handler=handler,
            regex=compile_pattern(pattern),
        ))
        return self

    def routes(self) -> List[Dict[str, Any]]:
        return [
            {"name": r.name, "path": r.pattern, "methods": list(r.methods)}
            for r in self._routes
        ]

    def route(self, method: str, path: str, query: Mapping[str, str]) -> RouteMatch:
        """Resolve one request; raises RouteNotFound when nothing matches."""
        method = method.upper()
        for candidate in self._routes:
            if method not in candidate.methods:
                continue
            matched = candidate.regex.match(path)
            if matched:
                return RouteMatch(route=candidate, path_params=matched.groupdict(), query=query)
        raise RouteNotFound(method, path)
