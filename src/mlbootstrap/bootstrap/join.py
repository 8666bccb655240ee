# Copyright 2026 Kezie Iwueke
# SPDX-License-Identifier: Apache-2.0

# src/mlbootstrap/bootstrap/join.py

from __future__ import annotations

import logging
from enum import Enum
from typing import Optional

from mlbootstrap.admin import endpoints
from mlbootstrap.admin.client import AdminClient
from mlbootstrap.config.models import ClusterTopology, NodeIdentity, Timing
from mlbootstrap.observers.dispatcher import EventBus
from mlbootstrap.observers.events import NodeJoined, new_ctx
from .instance import InstanceInitializer
from .restart import RestartDetector

log = logging.getLogger("mlbootstrap")


class JoinState(str, Enum):
    CHECKING = "Checking"
    ALREADY_JOINED = "AlreadyJoined"
    JOINED = "Joined"


class JoinOrchestrator:
    """
    Adds this node to the cluster run by the bootstrap host.

    The handshake is the admin API's two-step exchange: this node's
    server-config goes to the bootstrap host, which answers with a cluster
    config archive that is then posted back to this node.
    """

    def __init__(
        self,
        client: AdminClient,
        *,
        node: NodeIdentity,
        topology: ClusterTopology,
        timing: Timing,
        restart: RestartDetector,
        initializer: InstanceInitializer,
        bus: Optional[EventBus] = None,
        run_ctx: Optional[dict] = None,
    ):
        self.client = client
        self.node = node
        self.topology = topology
        self.timing = timing
        self.restart = restart
        self.initializer = initializer
        self.bus = bus or EventBus()
        self.run_ctx = run_ctx or new_ctx(node.fqdn, topology.group_name)
        self.state = JoinState.CHECKING

    def _bootstrap(self, port: int, path: str) -> str:
        return self.client.url(self.topology.bootstrap_host, port, path)

    def _local(self, port: int, path: str) -> str:
        return self.client.url(self.node.fqdn, port, path)

    def already_joined(self) -> bool:
        """
        200 means the bootstrap host knows this node, 404 means it does not.
        Anything else says nothing about membership, so keep asking.
        """
        url = self._bootstrap(endpoints.MANAGE_PORT, endpoints.host_properties(self.node.fqdn))
        while True:
            status = self.client.get(url).status
            if status == 200:
                return True
            if status == 404:
                return False
            log.info(
                f"[join] membership check for {self.node.fqdn} returned {status}, "
                f"retrying in {self.timing.join_check_delay}s"
            )
            self.client.sleep(self.timing.join_check_delay)

    def wait_for_group(self) -> None:
        name = self.topology.group_name
        log.info(f"[join] waiting for group {name!r} on {self.topology.bootstrap_host}")
        self.client.retry_validate(
            "GET",
            self._bootstrap(endpoints.MANAGE_PORT, endpoints.group(name)),
            200,
            retries=self.timing.group_wait_attempts,
            interval=self.timing.group_wait_interval,
        )

    def handshake(self) -> None:
        fqdn = self.node.fqdn

        server_config = self.client.retry_validate(
            "GET", self._local(endpoints.ADMIN_PORT, endpoints.SERVER_CONFIG), 200, retries=1
        )

        archive = self.client.retry_validate(
            "POST",
            self._bootstrap(endpoints.ADMIN_PORT, endpoints.CLUSTER_CONFIG),
            200,
            retries=1,
            data={"group": self.topology.group_name, "server-config": server_config.text},
        )
        log.info(f"[join] received cluster config for {fqdn} ({len(archive.body)} bytes)")

        baseline = self.restart.capture(fqdn)
        self.client.retry_validate(
            "POST",
            self._local(endpoints.ADMIN_PORT, endpoints.CLUSTER_CONFIG),
            202,
            retries=1,
            data=archive.body,
            headers={"Content-type": "application/zip"},
        )

        if self.timing.confirm_join_restart:
            self.restart.wait_for_restart(fqdn, baseline)
        else:
            log.info(f"[join] {fqdn} accepted the cluster config, restart not confirmed")

    def run(self) -> JoinState:
        bootstrap = self.topology.bootstrap_host
        if self.already_joined():
            log.info(f"[join] {self.node.fqdn} already part of the cluster at {bootstrap}")
            self.state = JoinState.ALREADY_JOINED
            self.bus.emit(NodeJoined(bootstrap_host=bootstrap, already=True, **self.run_ctx))
            return self.state

        self.initializer.initialize(self.node.fqdn)
        self.wait_for_group()
        self.handshake()

        log.info(f"[join] {self.node.fqdn} joined the cluster at {bootstrap}")
        self.state = JoinState.JOINED
        self.bus.emit(NodeJoined(bootstrap_host=bootstrap, already=False, **self.run_ctx))
        return self.state
