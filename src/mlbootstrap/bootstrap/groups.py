# Copyright 2026 Kezie Iwueke
# SPDX-License-Identifier: Apache-2.0

# src/mlbootstrap/bootstrap/groups.py

from __future__ import annotations

import logging
from typing import Optional

from mlbootstrap.admin import endpoints
from mlbootstrap.admin.client import AdminClient
from mlbootstrap.admin.parsers import parse_host_group, read_field
from mlbootstrap.config.models import ClusterTopology, NodeIdentity
from mlbootstrap.observers.dispatcher import EventBus
from mlbootstrap.observers.events import GroupCreated, GroupUpdated, new_ctx

log = logging.getLogger("mlbootstrap")


class GroupConfigurator:
    """
    Keeps the node-group present and its properties current.

    Only ordinal 0 of a node-group does this work; every call except the
    creation POST is best-effort.
    """

    def __init__(
        self,
        client: AdminClient,
        *,
        node: NodeIdentity,
        topology: ClusterTopology,
        bus: Optional[EventBus] = None,
        run_ctx: Optional[dict] = None,
    ):
        self.client = client
        self.node = node
        self.topology = topology
        self.bus = bus or EventBus()
        self.run_ctx = run_ctx or new_ctx(node.fqdn, topology.group_name)

    def _manage(self, path: str) -> str:
        return self.client.url(self.topology.bootstrap_host, endpoints.MANAGE_PORT, path)

    def current_group(self) -> Optional[str]:
        resp = self.client.get(self._manage(endpoints.host_properties(self.node.fqdn)))
        if resp.status != 200:
            log.debug(f"[groups] host properties for {self.node.fqdn} returned {resp.status}")
            return None
        return parse_host_group(resp.text)

    def up_to_date(self, current: str) -> bool:
        descriptor = self.topology.group()
        resp = self.client.get(self._manage(endpoints.group_properties(current)))
        if resp.status != 200:
            return False
        name = read_field(resp.text, "group-name")
        xdqp_ssl = (read_field(resp.text, "xdqp-ssl-enabled") or "").lower()
        return name == descriptor.name and xdqp_ssl == str(descriptor.xdqp_ssl_enabled).lower()

    def update(self, current: str) -> Optional[int]:
        descriptor = self.topology.group()
        if self.up_to_date(current):
            log.info(f"[groups] group {current!r} already up to date")
            return None

        resp = self.client.request(
            "PUT",
            self._manage(endpoints.group_properties(current)),
            json=descriptor.document(),
        )
        if resp.status == 204:
            log.info(f"[groups] group {current!r} updated")
        elif resp.status == 202:
            log.info(f"[groups] group {current!r} updated, restart triggered")
        else:
            log.warning(f"[groups] updating group {current!r} returned {resp.status}: {resp.text.strip()[:200]}")
        self.bus.emit(GroupUpdated(name=descriptor.name, previous=current, status=resp.status, **self.run_ctx))
        return resp.status

    def ensure(self) -> Optional[int]:
        """Create the group unless it exists. Returns the POST status, or None when skipped."""
        descriptor = self.topology.group()
        if self.client.get(self._manage(endpoints.group(descriptor.name))).status == 200:
            log.info(f"[groups] group {descriptor.name!r} already exists")
            return None

        resp = self.client.request("POST", self._manage(endpoints.GROUPS), json=descriptor.document())
        if resp.status == 201:
            log.info(f"[groups] group {descriptor.name!r} created")
        else:
            log.error(f"[groups] creating group {descriptor.name!r} returned {resp.status}: {resp.text.strip()[:200]}")
        self.bus.emit(GroupCreated(name=descriptor.name, status=resp.status, **self.run_ctx))
        return resp.status

    def run(self) -> bool:
        if self.node.ordinal != 0:
            log.info(f"[groups] ordinal {self.node.ordinal}, group configuration left to ordinal 0")
            return False

        current = self.current_group()
        if current:
            self.update(current)

        if not self.topology.is_bootstrap_group:
            self.ensure()
        return True
