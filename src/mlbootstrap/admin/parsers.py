# Copyright 2026 Kezie Iwueke
# SPDX-License-Identifier: Apache-2.0

# src/mlbootstrap/admin/parsers.py

from __future__ import annotations

import json
import xml.etree.ElementTree as ET
from dataclasses import dataclass
from typing import Any, List, Optional


@dataclass(frozen=True)
class CertificateInfo:
    uri: str
    host_name: Optional[str]
    temporary: bool


def _local(tag: str) -> str:
    return tag.rsplit("}", 1)[-1]


def _json(text: str) -> Any:
    try:
        return json.loads(text)
    except ValueError:
        return None


def _xml_field(text: str, name: str) -> Optional[str]:
    try:
        root = ET.fromstring(text)
    except ET.ParseError:
        return None
    for el in root.iter():
        if _local(el.tag) == name:
            return (el.text or "").strip()
    return None


def _json_field(doc: Any, name: str) -> Optional[str]:
    if isinstance(doc, dict):
        if name in doc and not isinstance(doc[name], (dict, list)):
            return str(doc[name])
        for value in doc.values():
            found = _json_field(value, name)
            if found is not None:
                return found
    elif isinstance(doc, list):
        for item in doc:
            found = _json_field(item, name)
            if found is not None:
                return found
    return None


def read_field(text: str, name: str) -> Optional[str]:
    """
    Read the first element/key called *name* from an admin API body, XML or JSON.
    """
    body = (text or "").strip()
    if body.startswith("<"):
        return _xml_field(body, name)
    if body.startswith(("{", "[")):
        return _json_field(_json(body), name)
    return None


def parse_last_startup(text: str) -> str:
    """
    Restart token from the timestamp endpoint. The endpoint answers with the
    bare timestamp; restart and init responses wrap it in <last-startup>.
    """
    body = (text or "").strip()
    if body.startswith(("<", "{")):
        return read_field(body, "last-startup") or ""
    return body


def parse_host_group(text: str) -> Optional[str]:
    group = read_field(text, "group")
    return group or None


def parse_certificate_uris(text: str) -> List[str]:
    doc = _json(text) or {}
    items = (
        doc.get("certificate-default-list", {})
        .get("list-items", {})
        .get("list-item", [])
    )
    if isinstance(items, dict):
        items = [items]
    return [i["uriref"] for i in items if isinstance(i, dict) and i.get("uriref")]


def parse_certificate(uri: str, text: str) -> CertificateInfo:
    body = (text or "").strip()
    host_name = read_field(body, "host-name")
    temporary = (read_field(body, "temporary") or "false").lower() == "true"
    return CertificateInfo(uri=uri, host_name=host_name or None, temporary=temporary)
