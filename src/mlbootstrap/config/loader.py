# Copyright 2026 Kezie Iwueke
# SPDX-License-Identifier: Apache-2.0

# src/mlbootstrap/config/loader.py

import logging
import os
from pathlib import Path
from typing import Mapping, Optional

import yaml
from pydantic import ValidationError

from mlbootstrap.admin.errors import ConfigError
from .models import BootstrapConfig, NodeIdentity

log = logging.getLogger("mlbootstrap")

SECRETS_ROOT = Path("/run/secrets")

_TRUE = {"1", "true", "yes", "on"}


def _deep_merge(base: dict, override: dict) -> dict:
    """
    Recursively merge *override* into *base* (mutates base).
    Only overwrites when the override value is non-empty.
    """
    for key, value in override.items():
        if (
            key in base
            and isinstance(base[key], dict)
            and isinstance(value, dict)
        ):
            _deep_merge(base[key], value)
        else:
            if value not in (None, ""):
                base[key] = value
    return base


def _load_yaml(path: Path) -> dict:
    """Load a YAML file, expanding ${ENV_VAR} references."""
    raw = path.read_text()
    expanded = os.path.expandvars(raw)
    return yaml.safe_load(expanded) or {}


def _flag(env: Mapping[str, str], name: str, default: Optional[bool] = False) -> Optional[bool]:
    raw = env.get(name)
    if raw is None or raw.strip() == "":
        return default
    return raw.strip().lower() in _TRUE


def _secret(env: Mapping[str, str], name: str, secrets_root: Path) -> Optional[str]:
    """
    Resolve NAME directly, or through NAME_FILE (relative to the secrets mount,
    the way the statefulset hands out 'ml-secrets/username').
    """
    value = env.get(name)
    if value:
        return value
    file_ref = env.get(f"{name}_FILE")
    if not file_ref:
        return None
    p = Path(file_ref)
    if not p.is_absolute():
        p = secrets_root / p
    if not p.is_file():
        log.warning("%s_FILE points at %s which does not exist", name, p)
        return None
    return p.read_text().strip()


def _has_named_certificates(server_cert_dir: Path) -> bool:
    return server_cert_dir.is_dir() and any(server_cert_dir.glob("*.crt"))


def _from_environment(env: Mapping[str, str], secrets_root: Path) -> dict:
    cluster_type = env.get("MARKLOGIC_CLUSTER_TYPE", "bootstrap") or "bootstrap"
    instance_name = env.get("POD_NAME") or env.get("HOSTNAME") or ""

    join_ca = env.get("MARKLOGIC_JOIN_CACERT_FILE", "marklogic-certs/cacert.pem")
    join_ca_path = Path(join_ca)
    if not join_ca_path.is_absolute():
        join_ca_path = secrets_root / join_ca_path

    data: dict = {
        "credential": {
            "username": _secret(env, "MARKLOGIC_ADMIN_USERNAME", secrets_root),
            "password": _secret(env, "MARKLOGIC_ADMIN_PASSWORD", secrets_root),
        },
        "node": {
            "instance_name": instance_name,
            "fqdn_suffix": env.get("MARKLOGIC_FQDN_SUFFIX", ""),
        },
        "topology": {
            "bootstrap_host": env.get("MARKLOGIC_BOOTSTRAP_HOST", ""),
            "group_name": env.get("MARKLOGIC_GROUP") or "Default",
            "cluster_type": cluster_type,
            "xdqp_ssl_enabled": _flag(env, "XDQP_SSL_ENABLED"),
            "join_tls_enabled": _flag(env, "MARKLOGIC_JOIN_TLS_ENABLED"),
            "license_key": env.get("LICENSE_KEY") or None,
            "licensee": env.get("LICENSEE") or None,
            "realm": env.get("MARKLOGIC_REALM") or "public",
            "wallet_password": _secret(env, "MARKLOGIC_WALLET_PASSWORD", secrets_root),
            "path_based_routing": _flag(env, "PATH_BASED_ROUTING"),
        },
        "certificates": {
            "join_ca_file": str(join_ca_path),
            "self_signed": _flag(env, "MARKLOGIC_SELF_SIGNED_CERTS", default=None),
        },
    }
    if env.get("MLBOOT_LOG_DIR"):
        data["log_dir"] = env["MLBOOT_LOG_DIR"]
    if env.get("MLBOOT_EVENTS_FILE"):
        data["events_file"] = env["MLBOOT_EVENTS_FILE"]
    return data


def load_config(
    path: str | Path | None = None,
    *,
    env: Optional[Mapping[str, str]] = None,
    secrets_root: Path = SECRETS_ROOT,
) -> BootstrapConfig:
    """
    Build the immutable node configuration.

    Values come from the environment the statefulset sets up (MARKLOGIC_*,
    POD_NAME, LICENSE_KEY, ...) and the mounted admin secret files. An
    optional YAML file (argument, or MLBOOT_CONFIG_FILE) is deep-merged on
    top, which is how timing overrides and certificate paths are supplied.

    Missing credentials or an unusable instance name raise ConfigError.
    """
    env = os.environ if env is None else env
    data = _from_environment(env, secrets_root)

    path = path or env.get("MLBOOT_CONFIG_FILE")
    if path:
        path = Path(path)
        log.debug("Merging config file %s", path)
        _deep_merge(data, _load_yaml(path))

    cred = data.get("credential") or {}
    missing = [k for k in ("username", "password") if not cred.get(k)]
    if missing:
        raise ConfigError(f"admin credential is missing: {', '.join(missing)}")

    node = data.pop("node")
    if not node.get("instance_name"):
        raise ConfigError("POD_NAME (or HOSTNAME) must name this instance")

    topology = data["topology"]
    if not topology.get("bootstrap_host"):
        raise ConfigError("MARKLOGIC_BOOTSTRAP_HOST must be set")

    certificates = data.setdefault("certificates", {})
    if certificates.get("self_signed") is None:
        server_cert_dir = Path(certificates.get("server_cert_dir", "/tmp/server-cert-secrets"))
        certificates["self_signed"] = not _has_named_certificates(server_cert_dir)

    try:
        data["node"] = NodeIdentity.from_instance_name(
            node["instance_name"],
            node.get("fqdn_suffix", ""),
            bootstrap_group=topology.get("cluster_type", "bootstrap") == "bootstrap",
        )
        return BootstrapConfig.model_validate(data)
    except (ValueError, ValidationError) as exc:
        raise ConfigError(f"invalid bootstrap configuration: {exc}") from exc
