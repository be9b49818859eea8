"""Request routing for the edge gateway."""

from .router import Route, RouteMatch, Router, compile_pattern

__all__ = ["Route", "RouteMatch", "Router", "compile_pattern"]
