# Copyright 2026 Kezie Iwueke
# SPDX-License-Identifier: Apache-2.0

# src/mlbootstrap/certs/placement.py

from __future__ import annotations

import logging
import os
import shutil
import time
from pathlib import Path
from typing import Callable, List, Optional

from mlbootstrap.admin import endpoints
from mlbootstrap.admin.errors import CertificateError
from mlbootstrap.config.models import BootstrapConfig
from mlbootstrap.observers.dispatcher import EventBus
from mlbootstrap.observers.events import CertificatePlaced, new_ctx
from mlbootstrap.utils.retry import RetryError, retry
from .material import CertificateMaterial, fetch_peer_chain, scan_pairs, select_certificate, to_pem, verify_pair

log = logging.getLogger("mlbootstrap")

CA_SOURCE_FILE = "ca.crt"


def discover(cfg: BootstrapConfig) -> CertificateMaterial:
    """
    Describe what an earlier placement left on disk. The key is deleted once
    activation has installed it, so a cert without a key means "already done".
    """
    paths = cfg.certificates
    mode = "self-signed" if paths.self_signed else "named"
    return CertificateMaterial(
        mode=mode,
        cert=paths.placed_cert if paths.placed_cert.is_file() else None,
        key=paths.placed_key if paths.placed_key.is_file() else None,
        ca=paths.placed_ca if paths.placed_ca.is_file() else None,
    )


class CertificatePlacer:
    """
    Puts TLS material where the server and the admin client expect it,
    before the node takes on its role.
    """

    def __init__(
        self,
        cfg: BootstrapConfig,
        *,
        bus: Optional[EventBus] = None,
        run_ctx: Optional[dict] = None,
        fetch_chain: Callable[[str, int, float], List[bytes]] = fetch_peer_chain,
        sleep: Callable[[float], None] = time.sleep,
    ):
        self.cfg = cfg
        self.paths = cfg.certificates
        self.bus = bus or EventBus()
        self.run_ctx = run_ctx or new_ctx(cfg.node.fqdn, cfg.topology.group_name)
        self.fetch_chain = fetch_chain
        self.sleep = sleep

    def place(self) -> CertificateMaterial:
        self.paths.certs_dir.mkdir(parents=True, exist_ok=True)
        if self.paths.self_signed:
            material = self._place_self_signed()
        else:
            material = self._place_named()
        self.bus.emit(
            CertificatePlaced(
                mode=material.mode,
                source=str(material.cert) if material.cert else None,
                **self.run_ctx,
            )
        )
        return material

    # -----------------------
    # Named certificates
    # -----------------------
    def _copy_ca(self) -> Path:
        source = self.paths.ca_source_dir / CA_SOURCE_FILE
        if not source.is_file():
            raise CertificateError(f"CA bundle {source} is not mounted")
        shutil.copyfile(source, self.paths.placed_ca)
        log.info(f"[certs] copied CA bundle {source} -> {self.paths.placed_ca}")
        return self.paths.placed_ca

    def _place_named(self) -> CertificateMaterial:
        fqdn = self.cfg.node.fqdn
        ca = self._copy_ca()

        candidates = scan_pairs(self.paths.server_cert_dir)
        log.debug(f"[certs] candidates: {[(p.cert_path.name, p.common_name) for p in candidates]}")
        pair = select_certificate(candidates, fqdn)

        if pair is None:
            if self.cfg.node.is_bootstrap_role:
                raise CertificateError(
                    f"no certificate in {self.paths.server_cert_dir} has CN {fqdn!r}; "
                    "the bootstrap instance cannot fall back to a temporary certificate"
                )
            log.warning(f"[certs] no certificate matches {fqdn}, falling back to a temporary certificate")
            return CertificateMaterial(mode="named", ca=ca)

        verify_pair(pair.cert_path, pair.key_path, ca)
        log.info(f"[certs] {pair.cert_path.name} matches {fqdn} and verified against {ca}")

        shutil.copyfile(pair.cert_path, self.paths.placed_cert)
        shutil.copyfile(pair.key_path, self.paths.placed_key)
        os.chmod(self.paths.placed_key, 0o600)
        log.info(f"[certs] placed {pair.cert_path.name} in {self.paths.certs_dir}")
        return CertificateMaterial(mode="named", cert=self.paths.placed_cert, key=self.paths.placed_key, ca=ca)

    # -----------------------
    # Self-signed
    # -----------------------
    def _place_self_signed(self) -> CertificateMaterial:
        if self.cfg.establishes_cluster:
            log.info("[certs] self-signed mode on the bootstrap host, nothing to fetch")
            return CertificateMaterial(mode="self-signed")

        host = self.cfg.topology.bootstrap_host
        timing = self.cfg.timing

        @retry(
            retries=timing.n_retry,
            delay=timing.retry_interval,
            retry_on=(OSError, CertificateError),
            sleep=self.sleep,
        )
        def _probe() -> List[bytes]:
            chain = self.fetch_chain(host, endpoints.ADMIN_PORT, timing.request_timeout)
            if not chain:
                raise CertificateError(f"{host}:{endpoints.ADMIN_PORT} presented no certificate")
            return chain

        try:
            chain = _probe()
        except RetryError as exc:
            raise CertificateError(
                f"could not read the certificate chain of {host}:{endpoints.ADMIN_PORT} "
                f"after {exc.attempts} attempts"
            ) from exc

        self.paths.placed_ca.write_bytes(to_pem(chain))
        log.info(f"[certs] stored {len(chain)} certificate(s) from {host} in {self.paths.placed_ca}")
        return CertificateMaterial(mode="self-signed", ca=self.paths.placed_ca)
