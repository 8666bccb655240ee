# Copyright 2026 Kezie Iwueke
# SPDX-License-Identifier: Apache-2.0

# src/mlbootstrap/admin/endpoints.py

from urllib.parse import quote

APP_PORT = 8000
ADMIN_PORT = 8001
MANAGE_PORT = 8002
HEALTHCHECK_PORT = 7997

TIMESTAMP = "/admin/v1/timestamp"
INIT = "/admin/v1/init"
INSTANCE_ADMIN = "/admin/v1/instance-admin"
SERVER_CONFIG = "/admin/v1/server-config"
CLUSTER_CONFIG = "/admin/v1/cluster-config"
EVAL = "/v1/eval"
HEALTHCHECK = "/LATEST/healthcheck"

GROUPS = "/manage/v2/groups"
CERTIFICATE_TEMPLATES = "/manage/v2/certificate-templates"
CERTIFICATES = "/manage/v2/certificates?format=json"

# General/administrative servers first, Manage last: it is the endpoint the
# coordinator itself talks to.
DEFAULT_APP_SERVERS = ("App-Services", "Admin", "Manage")


def host_properties(host: str) -> str:
    return f"/manage/v2/hosts/{quote(host)}/properties?format=json"


def host(host: str) -> str:
    return f"/manage/v2/hosts/{quote(host)}?format=json"


def group(name: str) -> str:
    return f"{GROUPS}/{quote(name)}?format=json"


def group_properties(name: str) -> str:
    return f"{GROUPS}/{quote(name)}/properties?format=json"


def certificate_template(name: str) -> str:
    return f"{CERTIFICATE_TEMPLATES}/{quote(name)}"


def server_properties(server: str, group_name: str) -> str:
    return f"/manage/v2/servers/{quote(server)}/properties?group-id={quote(group_name)}"
