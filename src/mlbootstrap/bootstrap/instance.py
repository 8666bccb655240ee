# Copyright 2026 Kezie Iwueke
# SPDX-License-Identifier: Apache-2.0

# src/mlbootstrap/bootstrap/instance.py

from __future__ import annotations

import logging

from mlbootstrap.admin import endpoints
from mlbootstrap.admin.client import AdminClient
from mlbootstrap.config.models import ClusterTopology
from .restart import RestartDetector

log = logging.getLogger("mlbootstrap")


class InstanceInitializer:
    """
    First-boot init of a fresh instance (and license install when one is
    configured). Callers only run it after their own idempotency check
    decided the node still needs work.
    """

    def __init__(self, client: AdminClient, topology: ClusterTopology, restart: RestartDetector):
        self.client = client
        self.topology = topology
        self.restart = restart

    def payload(self) -> dict:
        form = {}
        if self.topology.license_key:
            form["license-key"] = self.topology.license_key
            form["licensee"] = self.topology.licensee or ""
        return form

    def initialize(self, hostname: str) -> int:
        baseline = self.restart.capture(hostname)
        url = self.client.url(hostname, endpoints.ADMIN_PORT, endpoints.INIT)
        resp = self.client.request("POST", url, data=self.payload())

        if resp.status == 202:
            log.info(f"[init] {hostname} initialized, waiting for restart")
            self.restart.wait_for_restart(hostname, baseline)
        elif resp.status in (200, 204):
            log.info(f"[init] {hostname} initialized, no restart required")
        else:
            # A host that was initialized by an earlier run refuses a second
            # init; a real failure shows up in the next required step.
            log.error(f"[init] {hostname} init returned {resp.status}: {resp.text.strip()[:200]}")
        return resp.status
