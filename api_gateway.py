#!/usr/bin/env python3
# -*- coding: utf-8 -*-
"""
ICX API Gateway
===============

Thin read-only client for the ICX pricing API.

Endpoints
---------
GET {base}{prefix}/index/history?days=N
GET {base}{prefix}/prices/latest
GET {base}{prefix}/prices/provider/{name}?days=N

Every failure (connection error, timeout, non-2xx status, undecodable body,
a non-array body from a list endpoint) is raised as a single GatewayError. No retry happens here:
the refresh coordinator decides what happens next.
"""

from __future__ import annotations

import logging
import os
from typing import Any, Dict, List, Optional
from urllib.parse import quote

import requests

logger = logging.getLogger(__name__)

# ------------------------------------------------------------------------------
# CONFIG
# ------------------------------------------------------------------------------
API_URL = os.getenv("ICX_API_URL", "https://icx-api-production.up.railway.app")
API_PREFIX = os.getenv("ICX_API_PREFIX", "/api")
HTTP_TIMEOUT = float(os.getenv("ICX_HTTP_TIMEOUT", "15"))

UA = {
    "User-Agent": "icx-live-engine/0.1 (+https://icx-api-production.up.railway.app)",
    "Accept": "application/json",
}


class GatewayError(Exception):
    """Any unsuccessful call to the pricing API."""

    def __init__(self, message: str, status_code: Optional[int] = None):
        super().__init__(message)
        self.status_code = status_code


class ApiGateway:
    """Stateless (apart from config) wrapper around a requests.Session."""

    def __init__(self, base_url: str = API_URL, api_prefix: str = API_PREFIX,
                 timeout: float = HTTP_TIMEOUT, session: Optional[requests.Session] = None):
        self.base_url = base_url.rstrip("/")
        self.api_prefix = "/" + api_prefix.strip("/") if api_prefix.strip("/") else ""
        self.timeout = timeout
        self.session = session or requests.Session()

    def url_for(self, path: str) -> str:
        return f"{self.base_url}{self.api_prefix}/{path.lstrip('/')}"

    def fetch_json(self, path: str, params: Optional[Dict[str, Any]] = None) -> Any:
        url = self.url_for(path)
        try:
            resp = self.session.get(url, params=params, headers=UA, timeout=self.timeout)
        except requests.RequestException as e:
            logger.debug("GET %s failed: %s", url, e)
            raise GatewayError(f"request to {path} failed: {type(e).__name__}") from e

        if not 200 <= resp.status_code < 300:
            logger.debug("GET %s returned HTTP %s", url, resp.status_code)
            raise GatewayError(f"{path} returned HTTP {resp.status_code}", status_code=resp.status_code)

        try:
            return resp.json()
        except ValueError as e:
            raise GatewayError(f"{path} returned a non-JSON body", status_code=resp.status_code) from e

    def fetch_list(self, path: str, params: Optional[Dict[str, Any]] = None) -> List[Any]:
        """fetch_json for endpoints that answer with a JSON array."""
        payload = self.fetch_json(path, params)
        if not isinstance(payload, list):
            logger.debug("GET %s returned %s instead of a list", path, type(payload).__name__)
            raise GatewayError(f"{path} returned {type(payload).__name__}, expected a list")
        return payload

    # ---------------------- endpoint helpers ----------------------
    def fetch_index_history(self, days: int) -> List[Any]:
        return self.fetch_list("index/history", {"days": int(days)})

    def fetch_latest_prices(self) -> List[Any]:
        return self.fetch_list("prices/latest")

    def fetch_provider_history(self, name: str, days: int) -> List[Any]:
        return self.fetch_list(f"prices/provider/{quote(name, safe='')}", {"days": int(days)})


_default_gateway: Optional[ApiGateway] = None


def fetch_json(path: str, params: Optional[Dict[str, Any]] = None) -> Any:
    """Module-level shortcut using a lazily created default gateway."""
    global _default_gateway
    if _default_gateway is None:
        _default_gateway = ApiGateway()
    return _default_gateway.fetch_json(path, params)
