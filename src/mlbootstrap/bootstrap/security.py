# Copyright 2026 Kezie Iwueke
# SPDX-License-Identifier: Apache-2.0

# src/mlbootstrap/bootstrap/security.py

from __future__ import annotations

import logging
from enum import Enum
from typing import Optional

from mlbootstrap.admin import endpoints
from mlbootstrap.admin.client import AdminClient
from mlbootstrap.config.models import AdminCredential, ClusterTopology
from mlbootstrap.observers.dispatcher import EventBus
from mlbootstrap.observers.events import SecurityInitialized, new_ctx
from .instance import InstanceInitializer
from .restart import RestartDetector

log = logging.getLogger("mlbootstrap")


class SecurityState(str, Enum):
    NOT_CHECKED = "NotChecked"
    ALREADY_INITIALIZED = "AlreadyInitialized"
    INITIALIZED = "Initialized"


class SecurityBootstrapper:
    """
    One-time security initialization, bootstrap instance only.

    A pre-flight GET of the host's own properties decides whether anything
    needs doing, so re-running after a crash never repeats the POST.
    """

    def __init__(
        self,
        client: AdminClient,
        *,
        credential: AdminCredential,
        topology: ClusterTopology,
        restart: RestartDetector,
        initializer: InstanceInitializer,
        bus: Optional[EventBus] = None,
        run_ctx: Optional[dict] = None,
    ):
        self.client = client
        self.credential = credential
        self.topology = topology
        self.restart = restart
        self.initializer = initializer
        self.bus = bus or EventBus()
        self.run_ctx = run_ctx or new_ctx(client.local_host, topology.group_name)
        self.state = SecurityState.NOT_CHECKED

    def payload(self) -> dict:
        form = {
            "admin-username": self.credential.username,
            "admin-password": self.credential.password,
            "realm": self.topology.realm,
        }
        if self.topology.wallet_password:
            form["wallet-password"] = self.topology.wallet_password
        return form

    def is_initialized(self, hostname: str) -> bool:
        url = self.client.url(
            self.topology.bootstrap_host,
            endpoints.MANAGE_PORT,
            endpoints.host_properties(hostname),
        )
        return self.client.get(url).status == 200

    def run(self, hostname: str) -> SecurityState:
        if self.is_initialized(hostname):
            log.info(f"[security] {hostname} already initialized, skipping")
            self.state = SecurityState.ALREADY_INITIALIZED
            self.bus.emit(SecurityInitialized(already=True, **self.run_ctx))
            return self.state

        self.initializer.initialize(hostname)

        baseline = self.restart.capture(hostname)
        url = self.client.url(hostname, endpoints.ADMIN_PORT, endpoints.INSTANCE_ADMIN)
        log.info(f"[security] installing admin user {self.credential.username!r} on {hostname}")
        self.client.retry_validate("POST", url, 202, retries=1, data=self.payload())
        self.restart.wait_for_restart(hostname, baseline)

        self.state = SecurityState.INITIALIZED
        self.bus.emit(SecurityInitialized(already=False, **self.run_ctx))
        log.info(f"[security] {hostname} security initialized")
        return self.state
