# Copyright 2026 Kezie Iwueke
# SPDX-License-Identifier: Apache-2.0

# src/mlbootstrap/bootstrap/auth_scheme.py

from __future__ import annotations

import logging
from typing import Dict, Iterable

from mlbootstrap.admin import endpoints
from mlbootstrap.admin.client import AdminClient

log = logging.getLogger("mlbootstrap")


def switch_to_basic(
    client: AdminClient,
    *,
    host: str,
    group_name: str,
    servers: Iterable[str] = endpoints.DEFAULT_APP_SERVERS,
) -> Dict[str, int]:
    """
    Path-based routing through a reverse proxy cannot carry digest auth, so
    move the default app servers of *group_name* to basic. One attempt per
    server; failures are logged and left for the next reconciliation.
    """
    results: Dict[str, int] = {}
    for server in servers:
        url = client.url(host, endpoints.MANAGE_PORT, endpoints.server_properties(server, group_name))
        resp = client.request("PUT", url, json={"authentication": "basic"})
        results[server] = resp.status
        if resp.ok:
            log.info(f"[auth] {server} in group {group_name!r} now uses basic auth")
        else:
            log.warning(f"[auth] switching {server} to basic auth returned {resp.status}")
    return results
