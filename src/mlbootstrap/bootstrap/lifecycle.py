# Copyright 2026 Kezie Iwueke
# SPDX-License-Identifier: Apache-2.0

# src/mlbootstrap/bootstrap/lifecycle.py

from __future__ import annotations

import logging

from mlbootstrap.admin import endpoints
from mlbootstrap.admin.client import AdminClient

log = logging.getLogger("mlbootstrap")


def liveness(client: AdminClient, host: str) -> bool:
    """True when the health check endpoint answers 200."""
    url = client.url(host, endpoints.HEALTHCHECK_PORT, endpoints.HEALTHCHECK, scheme="http")
    resp = client.request("GET", url, auth=False, upgrade=False)
    if resp.status != 200:
        log.warning(f"[liveness] {host} health check returned {resp.status}")
        return False
    log.debug(f"[liveness] {host} healthy")
    return True


def prestop(client: AdminClient, host: str) -> int:
    # Best-effort: the platform kills the process anyway once the grace period ends.
    url = client.url(host, endpoints.MANAGE_PORT, endpoints.host(host))
    resp = client.request("POST", url, json={"operation": "shutdown"})
    if resp.ok:
        log.info(f"[prestop] {host} shutting down")
    else:
        log.warning(f"[prestop] shutdown request for {host} returned {resp.status}")
    return resp.status
