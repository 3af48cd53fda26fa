"""
Storefront Backend — Dispatch Package
=======================================

Route table, request parsing, and path classification used in front of
FastAPI's own router.

    route_table.py     RouteTable, RouteMatch, build_route_table
    request_parser.py  RequestParser, ParsedRequest, classify_request_type
"""

from storefront.config import settings
from storefront.dispatch.route_table import RouteTable

# Filled by create_app() once every router is included
route_table = RouteTable(cache_enabled=settings.route_cache_enabled)
