# Copyright 2026 Kezie Iwueke
# SPDX-License-Identifier: Apache-2.0

# src/mlbootstrap/bootstrap/readiness.py

from __future__ import annotations

import logging

from mlbootstrap.admin import endpoints
from mlbootstrap.admin.client import AdminClient

log = logging.getLogger("mlbootstrap")


class ReadinessProber:
    """
    Blocking liveness polls. Both loops are intentionally unbounded: nothing
    can progress before the process answers, and a cap would only turn a slow
    start into a crash loop. The platform's own hook timeout is the bound.
    """

    def __init__(self, client: AdminClient, *, local_delay: float, remote_delay: float, tls_join: bool):
        self.client = client
        self.local_delay = local_delay
        self.remote_delay = remote_delay
        self.tls_join = tls_join

    def wait_local(self, host: str) -> int:
        """Poll this node's timestamp endpoint until it answers with a body."""
        url = self.client.url(host, endpoints.ADMIN_PORT, endpoints.TIMESTAMP, scheme="http")
        polls = 0
        while True:
            polls += 1
            resp = self.client.request("GET", url, upgrade=False)
            if resp.body.strip():
                log.info(f"[readiness] {host} is up after {polls} poll(s)")
                return polls
            log.debug(f"[readiness] {host} not answering yet (status {resp.status}), sleeping {self.local_delay}s")
            self.client.sleep(self.local_delay)

    def expected_challenge(self) -> int:
        # plain http against a TLS admin port answers 403
        return 403 if self.tls_join else 401

    def wait_remote(self, host: str) -> int:
        """Poll the bootstrap host, unauthenticated, until it issues its auth challenge."""
        url = self.client.url(host, endpoints.ADMIN_PORT, endpoints.TIMESTAMP, scheme="http")
        expected = self.expected_challenge()
        polls = 0
        while True:
            polls += 1
            resp = self.client.request("GET", url, auth=False, upgrade=False)
            if resp.status == expected:
                log.info(f"[readiness] bootstrap host {host} answered {expected} after {polls} poll(s)")
                return polls
            log.info(
                f"[readiness] waiting for bootstrap host {host} "
                f"(status {resp.status}, want {expected}), sleeping {self.remote_delay}s"
            )
            self.client.sleep(self.remote_delay)
