"""
Storefront Backend — Route Dispatch Table
===========================================

What:  The table of API endpoints, matched by method and path pattern.
Why:   The dispatch layer needs to know, before any endpoint runs, whether a
       request names a real endpoint (404 vs 405), which path parameters it
       carries, and which auth guards protect it. It also powers /api/docs.
How:   Patterns use `{name}` placeholders (FastAPI's syntax), compiled once
       into anchored regexes. Matching tries a method's patterns in
       registration order; results are memoised per "METHOD:path".
Who:   Filled from the FastAPI app by build_route_table(); read by
       DispatchMiddleware and the meta routes.

Example:
    table.add("GET", "/api/payments/{payment_id}", "payments.get_payment", ("auth",))
    table.match("GET", "/api/payments/42")
    → RouteMatch(handler="payments.get_payment", params={"payment_id": "42"}, guards=("auth",))
"""

import logging
import re
from collections import OrderedDict
from dataclasses import dataclass, field, replace
from typing import Any, Dict, Iterable, Iterator, List, Optional, Pattern, Tuple

from fastapi import FastAPI
from fastapi.dependencies.models import Dependant
from fastapi.routing import APIRoute

from storefront.middleware.auth import AuthGuard

logger = logging.getLogger(__name__)

_PLACEHOLDER = re.compile(r"\{([^}:]+)(?::([^}]*))?\}")

# Bounded so parameterised paths (/api/payments/1, /2, ...) cannot grow it forever
ROUTE_CACHE_SIZE = 1024


def compile_pattern(pattern: str) -> Tuple[Pattern[str], Tuple[str, ...]]:
    names: List[str] = []
    parts: List[str] = []
    position = 0
    for placeholder in _PLACEHOLDER.finditer(pattern):
        parts.append(re.escape(pattern[position:placeholder.start()]))
        name, converter = placeholder.group(1), placeholder.group(2)
        names.append(name)
        parts.append("(.+)" if converter == "path" else "([^/]+)")
        position = placeholder.end()
    parts.append(re.escape(pattern[position:]))
    return re.compile("^" + "".join(parts) + "$"), tuple(names)


@dataclass(frozen=True)
class RouteDefinition:
    method: str
    pattern: str
    handler: str
    guards: Tuple[str, ...] = ()
    regex: Pattern[str] = field(repr=False, compare=False, default=None)
    param_names: Tuple[str, ...] = field(repr=False, compare=False, default=())


@dataclass(frozen=True)
class RouteMatch:
    handler: str
    params: Dict[str, str]
    guards: Tuple[str, ...] = ()
    pattern: str = ""


class RouteTable:
    """
    Method → ordered list of route definitions, plus a match cache.

    Registration order is match order, so static paths such as
    /api/payments/methods must be added before /api/payments/{id}.
    """

    def __init__(self, cache_enabled: bool = True, cache_size: int = ROUTE_CACHE_SIZE):
        self._routes: Dict[str, List[RouteDefinition]] = {}
        self._cache: "OrderedDict[str, RouteMatch]" = OrderedDict()
        self.cache_enabled = cache_enabled
        self.cache_size = cache_size

    def add(
        self,
        method: str,
        pattern: str,
        handler: str,
        guards: Iterable[str] = (),
    ) -> RouteDefinition:
        regex, names = compile_pattern(pattern)
        definition = RouteDefinition(
            method=method.upper(),
            pattern=pattern,
            handler=handler,
            guards=tuple(guards),
            regex=regex,
            param_names=names,
        )
        self._routes.setdefault(definition.method, []).append(definition)
        self.clear_cache()
        return definition

    def match(self, method: str, path: str) -> Optional[RouteMatch]:
        method = method.upper()
        cache_key = f"{method}:{path}"

        # Callers get their own params dict; the cached entry is never handed out
        if self.cache_enabled and cache_key in self._cache:
            self._cache.move_to_end(cache_key)
            cached = self._cache[cache_key]
            return replace(cached, params=dict(cached.params))

        for definition in self._routes.get(method, []):
            found = definition.regex.match(path)
            if not found:
                continue
            result = RouteMatch(
                handler=definition.handler,
                params=dict(zip(definition.param_names, found.groups())),
                guards=definition.guards,
                pattern=definition.pattern,
            )
            if self.cache_enabled:
                self._cache[cache_key] = replace(result, params=dict(result.params))
                if len(self._cache) > self.cache_size:
                    self._cache.popitem(last=False)
            return result

        return None

    def allowed_methods(self, path: str) -> List[str]:
        """Methods under which some pattern matches `path` (sorted, for the Allow header)."""
        return sorted(
            method
            for method, definitions in self._routes.items()
            if any(d.regex.match(path) for d in definitions)
        )

    def available_routes(self, method: str) -> List[str]:
        return [d.pattern for d in self._routes.get(method.upper(), [])]

    def definitions(self) -> List[RouteDefinition]:
        return [d for definitions in self._routes.values() for d in definitions]

    def clear_cache(self) -> None:
        self._cache.clear()

    def reset(self) -> None:
        self._routes.clear()
        self.clear_cache()

    def __len__(self) -> int:
        return sum(len(v) for v in self._routes.values())


def _guard_names(dependant: Dependant) -> Tuple[str, ...]:
    names: List[str] = []
    for sub in dependant.dependencies:
        if isinstance(sub.call, AuthGuard) and sub.call.name not in names:
            names.append(sub.call.name)
        for nested in _guard_names(sub):
            if nested not in names:
                names.append(nested)
    return tuple(names)


def iter_api_routes(routes: Iterable[Any], _seen: Optional[set] = None) -> Iterator[APIRoute]:
    """
    Yield every APIRoute once, descending into included-router wrappers
    that keep their own `routes` (or a `router` holding them).

    APIRouter stores routes with its prefix already applied, so the paths
    yielded are the full request paths.
    """
    seen = set() if _seen is None else _seen
    for route in routes:
        if isinstance(route, APIRoute):
            if id(route) not in seen:
                seen.add(id(route))
                yield route
            continue
        nested = getattr(route, "routes", None)
        if nested is None:
            nested = getattr(getattr(route, "router", None), "routes", None)
        if nested:
            yield from iter_api_routes(nested, seen)


def build_route_table(app: FastAPI, table: RouteTable, prefix: str = "/api/") -> RouteTable:
    """
    Register every FastAPI route under `prefix` in `table`.

    Guards are discovered from the route's dependency tree, so a handler that
    declares `Depends(require_admin)` is listed with ("admin",).
    """
    table.reset()
    for route in iter_api_routes(app.routes):
        if not route.path.startswith(prefix):
            continue
        endpoint = route.endpoint
        handler = f"{endpoint.__module__.rsplit('.', 1)[-1]}.{endpoint.__name__}"
        guards = _guard_names(route.dependant)
        for method in sorted(route.methods):
            table.add(method, route.path, handler, guards)
    logger.info("Route table built with %d API routes", len(table))
    return table
