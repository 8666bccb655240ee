# Copyright 2026 Kezie Iwueke
# SPDX-License-Identifier: Apache-2.0

# src/mlbootstrap/bootstrap/coordinator.py

from __future__ import annotations

import logging
import time
from enum import Enum
from typing import Callable, List, Optional

from mlbootstrap.admin.client import AdminClient
from mlbootstrap.admin.errors import FatalBootstrapError
from mlbootstrap.certs.activation import CertificateActivator
from mlbootstrap.certs.material import CertificateMaterial
from mlbootstrap.certs.placement import discover
from mlbootstrap.config.models import BootstrapConfig
from mlbootstrap.observers.dispatcher import EventBus
from mlbootstrap.observers.events import (
    new_ctx,
    PhaseStarted,
    PhaseSucceeded,
    PhaseSkipped,
    PhaseFailed,
    BootstrapSummary,
)
from .auth_scheme import switch_to_basic
from .groups import GroupConfigurator
from .instance import InstanceInitializer
from .join import JoinOrchestrator
from .readiness import ReadinessProber
from .restart import RestartDetector
from .security import SecurityBootstrapper

log = logging.getLogger("mlbootstrap")


class NodeState(str, Enum):
    STARTING = "STARTING"
    WAITING_LOCAL_READY = "WAITING_LOCAL_READY"
    BOOTSTRAP_PATH = "BOOTSTRAP_PATH"
    JOIN_PATH = "JOIN_PATH"
    POST_JOIN_AUTH_CONFIG = "POST_JOIN_AUTH_CONFIG"
    TLS_CONFIG = "TLS_CONFIG"
    DONE = "DONE"
    FAILED = "FAILED"


class NodeBootstrapCoordinator:
    """
    Runs once per node from the post-start hook.

    Readiness first, then either the bootstrap path (security, groups) or the
    join path (remote readiness, groups, join), then the optional auth-scheme
    switch and certificate activation. Every step carries its own idempotency
    check, so re-running the whole sequence after a crash is safe.
    """

    def __init__(
        self,
        cfg: BootstrapConfig,
        client: AdminClient,
        *,
        bus: Optional[EventBus] = None,
        run_id: Optional[str] = None,
        material: Optional[CertificateMaterial] = None,
        clock: Callable[[], float] = time.monotonic,
    ):
        self.cfg = cfg
        self.client = client
        self.bus = bus or EventBus()
        self.run_ctx = new_ctx(cfg.node.fqdn, cfg.topology.group_name, run_id=run_id)
        self.material = material
        self.clock = clock
        self.state = NodeState.STARTING
        self.history: List[NodeState] = [self.state]

        timing = cfg.timing
        self.readiness = ReadinessProber(
            client,
            local_delay=timing.local_ready_delay,
            remote_delay=timing.remote_ready_delay,
            tls_join=cfg.topology.join_tls_enabled,
        )
        self.restart = RestartDetector(
            client,
            retries=timing.n_retry,
            interval=timing.retry_interval,
            bus=self.bus,
            run_ctx=self.run_ctx,
        )
        self.initializer = InstanceInitializer(client, cfg.topology, self.restart)
        self.groups = GroupConfigurator(
            client, node=cfg.node, topology=cfg.topology, bus=self.bus, run_ctx=self.run_ctx
        )

    @property
    def path(self) -> str:
        return "bootstrap" if self.cfg.establishes_cluster else "join"

    def _enter(self, state: NodeState) -> None:
        log.debug(f"[coordinator] {self.state.value} -> {state.value}")
        self.state = state
        self.history.append(state)

    def _phase(self, name: str, fn: Callable[[], object]) -> object:
        self.bus.emit(PhaseStarted(phase=name, **self.run_ctx))
        t0 = self.clock()
        try:
            result = fn()
        except FatalBootstrapError as exc:
            self.bus.emit(PhaseFailed(phase=name, error=str(exc), **self.run_ctx))
            raise
        duration_ms = int((self.clock() - t0) * 1000)
        self.bus.emit(PhaseSucceeded(phase=name, duration_ms=duration_ms, **self.run_ctx))
        return result

    def _skip(self, name: str, reason: str) -> None:
        log.info(f"[coordinator] skipping {name}: {reason}")
        self.bus.emit(PhaseSkipped(phase=name, reason=reason, **self.run_ctx))

    # -----------------------
    # Paths
    # -----------------------
    def _bootstrap_path(self) -> None:
        security = SecurityBootstrapper(
            self.client,
            credential=self.cfg.credential,
            topology=self.cfg.topology,
            restart=self.restart,
            initializer=self.initializer,
            bus=self.bus,
            run_ctx=self.run_ctx,
        )
        self._phase("security", lambda: security.run(self.cfg.node.fqdn))
        self._phase("groups", self.groups.run)

    def _join_path(self) -> None:
        join = JoinOrchestrator(
            self.client,
            node=self.cfg.node,
            topology=self.cfg.topology,
            timing=self.cfg.timing,
            restart=self.restart,
            initializer=self.initializer,
            bus=self.bus,
            run_ctx=self.run_ctx,
        )
        bootstrap = self.cfg.topology.bootstrap_host
        self._phase("remote-ready", lambda: self.readiness.wait_remote(bootstrap))
        self._phase("groups", self.groups.run)
        self._phase("join", join.run)

    def run(self) -> NodeState:
        node = self.cfg.node
        topology = self.cfg.topology
        log.info(
            f"[coordinator] {node.fqdn} ordinal={node.ordinal} group={topology.group_name} "
            f"bootstrap={topology.bootstrap_host} path={self.path}"
        )

        try:
            self._enter(NodeState.WAITING_LOCAL_READY)
            self._phase("local-ready", lambda: self.readiness.wait_local(node.fqdn))

            if self.cfg.establishes_cluster:
                self._enter(NodeState.BOOTSTRAP_PATH)
                self._bootstrap_path()
            else:
                self._enter(NodeState.JOIN_PATH)
                self._join_path()

            if topology.path_based_routing and node.ordinal == 0:
                self._enter(NodeState.POST_JOIN_AUTH_CONFIG)
                self._phase(
                    "auth-scheme",
                    lambda: switch_to_basic(self.client, host=node.fqdn, group_name=topology.group_name),
                )
            else:
                self._skip("auth-scheme", "path-based routing off or not ordinal 0")

            if topology.join_tls_enabled:
                self._enter(NodeState.TLS_CONFIG)
                material = self.material or discover(self.cfg)
                activator = CertificateActivator(self.client, self.cfg, bus=self.bus, run_ctx=self.run_ctx)
                self._phase("certificates", lambda: activator.activate(material))
            else:
                self._skip("certificates", "TLS join disabled")

        except FatalBootstrapError as exc:
            self._enter(NodeState.FAILED)
            self.bus.emit(BootstrapSummary(path=self.path, status=NodeState.FAILED.value, error=str(exc), **self.run_ctx))
            raise

        self._enter(NodeState.DONE)
        self.bus.emit(BootstrapSummary(path=self.path, status=NodeState.DONE.value, **self.run_ctx))
        log.info(f"[coordinator] {node.fqdn} done")
        return self.state
