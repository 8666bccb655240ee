# Copyright 2026 Kezie Iwueke
# SPDX-License-Identifier: Apache-2.0

# src/mlbootstrap/config/models.py

from __future__ import annotations

import re
from pathlib import Path
from typing import Literal, Optional

from pydantic import BaseModel, ConfigDict, Field

_ORDINAL_RE = re.compile(r"-(\d+)$")


class AdminCredential(BaseModel):
    """Shared secret used for every authenticated admin API call."""

    model_config = ConfigDict(frozen=True)

    username: str = Field(min_length=1)
    password: str = Field(min_length=1, repr=False)


class NodeIdentity(BaseModel):
    model_config = ConfigDict(frozen=True)

    instance_name: str
    ordinal: int
    fqdn: str
    is_bootstrap_role: bool = False

    @classmethod
    def from_instance_name(
        cls,
        instance_name: str,
        fqdn_suffix: str,
        *,
        bootstrap_group: bool,
    ) -> "NodeIdentity":
        """
        Derive the identity from the platform-assigned instance name.

        'marklogic-2' with suffix 'marklogic.ns.svc.cluster.local' gives ordinal 2
        and fqdn 'marklogic-2.marklogic.ns.svc.cluster.local'. Only ordinal 0 of
        the bootstrap node-group carries the bootstrap role.
        """
        m = _ORDINAL_RE.search(instance_name)
        if not m:
            raise ValueError(f"instance name {instance_name!r} has no ordinal suffix")
        ordinal = int(m.group(1))
        suffix = fqdn_suffix.strip(".")
        fqdn = f"{instance_name}.{suffix}" if suffix else instance_name
        return cls(
            instance_name=instance_name,
            ordinal=ordinal,
            fqdn=fqdn,
            is_bootstrap_role=bootstrap_group and ordinal == 0,
        )


class GroupDescriptor(BaseModel):
    model_config = ConfigDict(frozen=True)

    name: str
    xdqp_ssl_enabled: bool = False

    def document(self) -> dict:
        return {"group-name": self.name, "xdqp-ssl-enabled": self.xdqp_ssl_enabled}


class ClusterTopology(BaseModel):
    model_config = ConfigDict(frozen=True)

    bootstrap_host: str
    group_name: str = "Default"
    cluster_type: Literal["bootstrap", "non-bootstrap"] = "bootstrap"
    xdqp_ssl_enabled: bool = False
    join_tls_enabled: bool = False
    license_key: Optional[str] = Field(default=None, repr=False)
    licensee: Optional[str] = None
    realm: str = "public"
    wallet_password: Optional[str] = Field(default=None, repr=False)
    path_based_routing: bool = False

    @property
    def is_bootstrap_group(self) -> bool:
        return self.cluster_type == "bootstrap"

    def group(self) -> GroupDescriptor:
        return GroupDescriptor(name=self.group_name, xdqp_ssl_enabled=self.xdqp_ssl_enabled)


class Timing(BaseModel):
    """
    Reference retry counts and intervals. None of these are protocol
    invariants; every value can be overridden from the config file.
    """

    model_config = ConfigDict(frozen=True)

    n_retry: int = Field(default=60, ge=1)
    retry_interval: float = Field(default=1.0, ge=0)
    request_timeout: float = Field(default=15.0, gt=0)
    local_ready_delay: float = Field(default=5.0, ge=0)
    remote_ready_delay: float = Field(default=10.0, ge=0)
    join_check_delay: float = Field(default=10.0, ge=0)
    group_wait_attempts: int = Field(default=10, ge=1)
    group_wait_interval: float = Field(default=10.0, ge=0)
    confirm_join_restart: bool = True


class CertificatePaths(BaseModel):
    model_config = ConfigDict(frozen=True)

    ca_source_dir: Path = Path("/tmp/ca-cert-secret")
    server_cert_dir: Path = Path("/tmp/server-cert-secrets")
    certs_dir: Path = Path("/run/secrets/marklogic-certs")
    join_ca_file: Path = Path("/run/secrets/marklogic-certs/cacert.pem")
    self_signed: bool = True
    template_name: str = "defaultTemplate"

    @property
    def placed_cert(self) -> Path:
        return self.certs_dir / "tls.crt"

    @property
    def placed_key(self) -> Path:
        return self.certs_dir / "tls.key"

    @property
    def placed_ca(self) -> Path:
        return self.certs_dir / "cacert.pem"


class BootstrapConfig(BaseModel):
    model_config = ConfigDict(frozen=True)

    credential: AdminCredential
    node: NodeIdentity
    topology: ClusterTopology
    timing: Timing = Timing()
    certificates: CertificatePaths = CertificatePaths()
    log_dir: Optional[Path] = None
    events_file: Optional[Path] = None

    @property
    def establishes_cluster(self) -> bool:
        """True only on the cluster-bootstrap ordinal-0 instance."""
        return self.node.is_bootstrap_role and self.node.fqdn == self.topology.bootstrap_host
