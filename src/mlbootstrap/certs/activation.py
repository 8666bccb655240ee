# Copyright 2026 Kezie Iwueke
# SPDX-License-Identifier: Apache-2.0

# src/mlbootstrap/certs/activation.py

from __future__ import annotations

import json
import logging
from typing import Optional

from mlbootstrap.admin import endpoints
from mlbootstrap.admin.client import AdminClient
from mlbootstrap.admin.parsers import parse_certificate, parse_certificate_uris
from mlbootstrap.config.models import BootstrapConfig
from mlbootstrap.observers.dispatcher import EventBus
from mlbootstrap.observers.events import CertificateActivated, new_ctx
from .material import CertificateMaterial

log = logging.getLogger("mlbootstrap")

VALIDITY_DAYS = 365

_PKI_PROLOG = """xquery version "1.0-ml";
import module namespace pki = "http://marklogic.com/xdmp/pki" at "/MarkLogic/pki.xqy";
declare variable $template as xs:string external;
"""

TEMPLATE_CA_QUERY = _PKI_PROLOG + """
let $tid := pki:template-get-id(pki:get-template-by-name($template))
return
  if (fn:exists(pki:get-template-certificate-authority($tid)))
  then "existing"
  else (pki:generate-template-certificate-authority($tid, %d), "generated")[fn:last()]
""" % VALIDITY_DAYS

TEMPORARY_CERT_QUERY = _PKI_PROLOG + """declare variable $host as xs:string external;
let $tid := pki:template-get-id(pki:get-template-by-name($template))
return pki:generate-temporary-certificate-if-necessary($tid, %d, $host, $host, ())
""" % VALIDITY_DAYS


def template_document(name: str) -> dict:
    return {
        "template-name": name,
        "template-description": "certificate template for cluster TLS",
        "key-type": "rsa",
        "key-options": {"key-length": "2048"},
        "req": {
            "version": "0",
            "subject": {"organizationName": "MarkLogic"},
        },
    }


class CertificateActivator:
    """
    Installs this node's certificate into the shared template and moves the
    group's default app servers onto it.
    """

    def __init__(
        self,
        client: AdminClient,
        cfg: BootstrapConfig,
        *,
        bus: Optional[EventBus] = None,
        run_ctx: Optional[dict] = None,
    ):
        self.client = client
        self.cfg = cfg
        self.template = cfg.certificates.template_name
        self.fqdn = cfg.node.fqdn
        self.bus = bus or EventBus()
        self.run_ctx = run_ctx or new_ctx(cfg.node.fqdn, cfg.topology.group_name)

    def _manage(self, path: str) -> str:
        return self.client.url(self.fqdn, endpoints.MANAGE_PORT, path)

    def _eval(self, query: str, variables: dict):
        return self.client.retry_validate(
            "POST",
            self.client.url(self.fqdn, endpoints.APP_PORT, endpoints.EVAL),
            200,
            retries=1,
            data={"xquery": query, "vars": json.dumps(variables)},
        )

    # -----------------------
    # Template
    # -----------------------
    def ensure_template(self, material: CertificateMaterial) -> None:
        url = self._manage(endpoints.certificate_template(self.template))

        if not self.cfg.establishes_cluster:
            log.info(f"[certs] waiting for certificate template {self.template!r}")
            self.client.retry_validate("GET", url, 200)
            return

        if self.client.get(url).status == 200:
            log.info(f"[certs] certificate template {self.template!r} already exists")
        else:
            resp = self.client.request(
                "POST",
                self._manage(endpoints.CERTIFICATE_TEMPLATES),
                json=template_document(self.template),
            )
            if resp.status == 201:
                log.info(f"[certs] certificate template {self.template!r} created")
            else:
                log.warning(f"[certs] creating template {self.template!r} returned {resp.status}: {resp.text.strip()[:200]}")
                if self.client.get(url).status != 200:
                    return

        if not material.named:
            self.ensure_template_ca()

    def ensure_template_ca(self) -> bool:
        """Generate the template CA unless the server already holds one. True when generated."""
        resp = self._eval(TEMPLATE_CA_QUERY, {"template": self.template})
        generated = "generated" in resp.text
        if generated:
            log.info(f"[certs] generated a CA for template {self.template!r}")
        else:
            log.info(f"[certs] template {self.template!r} already has a CA")
        return generated

    # -----------------------
    # Host certificate
    # -----------------------
    def install(self, material: CertificateMaterial) -> str:
        if material.cert and material.key:
            body = {
                "operation": "insert-host-certificates",
                "certificates": [
                    {
                        "certificate": {
                            "cert": material.cert.read_text(),
                            "pkey": material.key.read_text(),
                        }
                    }
                ],
            }
            self.client.retry_validate(
                "POST",
                self._manage(endpoints.certificate_template(self.template)),
                (200, 201, 204),
                retries=1,
                json=body,
            )
            log.info(f"[certs] installed named certificate {material.cert} for {self.fqdn}")
            return "named"

        if material.cert:
            log.info(f"[certs] named certificate for {self.fqdn} was installed by an earlier run")
            return "named"

        self._eval(TEMPORARY_CERT_QUERY, {"template": self.template, "host": self.fqdn})
        log.info(f"[certs] temporary certificate generated for {self.fqdn}")
        return "temporary"

    def verify(self, material: CertificateMaterial) -> Optional[bool]:
        """
        Look for this host's certificate in the cluster's list. Only warns:
        a missing entry does not stop the servers from serving TLS.
        """
        resp = self.client.get(self._manage(endpoints.CERTIFICATES))
        if resp.status != 200:
            log.warning(f"[certs] listing certificates returned {resp.status}")
            return None

        found = []
        for uri in parse_certificate_uris(resp.text):
            detail = self.client.get(self._manage(f"{uri}?format=json"))
            if detail.status != 200:
                continue
            info = parse_certificate(uri, detail.text)
            if info.host_name == self.fqdn:
                found.append(info)

        if not found:
            log.warning(f"[certs] no certificate for {self.fqdn} is installed")
            return False
        if material.cert and all(c.temporary for c in found):
            log.warning(f"[certs] {self.fqdn} only has a temporary certificate, the named one did not take")
            return False
        log.info(f"[certs] certificate for {self.fqdn} is installed")
        return True

    # -----------------------
    # App servers
    # -----------------------
    def switch_servers(self) -> int:
        group_name = self.cfg.topology.group_name
        switched = 0
        for server in endpoints.DEFAULT_APP_SERVERS:
            self.client.retry_validate(
                "PUT",
                self._manage(endpoints.server_properties(server, group_name)),
                (202, 204),
                retries=1,
                json={"ssl-certificate-template": self.template},
            )
            switched += 1
            log.info(f"[certs] {server} in group {group_name!r} now uses template {self.template!r}")
        return switched

    def activate(self, material: CertificateMaterial) -> int:
        self.ensure_template(material)
        kind = self.install(material)
        self.verify(material)

        switched = 0
        if self.cfg.node.ordinal == 0:
            switched = self.switch_servers()

        key = self.cfg.certificates.placed_key
        if key.exists():
            key.unlink()
            log.info(f"[certs] removed {key}")

        self.bus.emit(
            CertificateActivated(mode=kind, template=self.template, servers_switched=switched, **self.run_ctx)
        )
        return switched
