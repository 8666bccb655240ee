# Copyright 2026 Kezie Iwueke
# SPDX-License-Identifier: Apache-2.0

# src/mlbootstrap/certs/material.py

from __future__ import annotations

import re
import socket
import ssl
from dataclasses import dataclass
from pathlib import Path
from typing import Iterable, List, Optional, Sequence

from cryptography import x509
from cryptography.exceptions import InvalidSignature
from cryptography.hazmat.primitives import serialization
from cryptography.hazmat.primitives.asymmetric import rsa
from cryptography.x509.oid import NameOID

from mlbootstrap.admin.errors import CertificateError

_PAIR_RE = re.compile(r"^tls_(\d+)\.crt$")


@dataclass(frozen=True)
class CertificatePair:
    index: int
    cert_path: Path
    key_path: Path
    common_name: Optional[str]


@dataclass(frozen=True)
class CertificateMaterial:
    mode: str                       # "named" | "self-signed"
    cert: Optional[Path] = None
    key: Optional[Path] = None
    ca: Optional[Path] = None

    @property
    def named(self) -> bool:
        return self.mode == "named"


# ---------------------------------------------------------------------
# Loading
# ---------------------------------------------------------------------
def load_certificate(path: Path) -> x509.Certificate:
    try:
        return x509.load_pem_x509_certificate(Path(path).read_bytes())
    except ValueError as exc:
        raise CertificateError(f"{path} is not a PEM certificate") from exc


def load_bundle(path: Path) -> List[x509.Certificate]:
    try:
        certs = x509.load_pem_x509_certificates(Path(path).read_bytes())
    except ValueError as exc:
        raise CertificateError(f"{path} is not a PEM certificate bundle") from exc
    return certs


def load_private_key(path: Path):
    try:
        return serialization.load_pem_private_key(Path(path).read_bytes(), password=None)
    except (ValueError, TypeError) as exc:
        raise CertificateError(f"{path} is not an unencrypted PEM private key") from exc


def common_name(cert: x509.Certificate) -> Optional[str]:
    attrs = cert.subject.get_attributes_for_oid(NameOID.COMMON_NAME)
    if not attrs:
        return None
    value = attrs[0].value
    return value.decode("utf-8") if isinstance(value, bytes) else value


# ---------------------------------------------------------------------
# Selection
# ---------------------------------------------------------------------
def scan_pairs(directory: Path) -> List[CertificatePair]:
    """List the mounted tls_<i>.crt/tls_<i>.key candidates, in index order."""
    directory = Path(directory)
    if not directory.is_dir():
        return []

    pairs = []
    for path in directory.iterdir():
        m = _PAIR_RE.match(path.name)
        if not m:
            continue
        index = int(m.group(1))
        try:
            cn = common_name(load_certificate(path))
        except CertificateError:
            cn = None
        pairs.append(
            CertificatePair(
                index=index,
                cert_path=path,
                key_path=directory / f"tls_{index}.key",
                common_name=cn,
            )
        )
    return sorted(pairs, key=lambda p: p.index)


def select_certificate(candidates: Iterable[CertificatePair], fqdn: str) -> Optional[CertificatePair]:
    for pair in candidates:
        if pair.common_name == fqdn:
            return pair
    return None


# ---------------------------------------------------------------------
# Verification
# ---------------------------------------------------------------------
def _is_self_signed(cert: x509.Certificate) -> bool:
    if cert.subject != cert.issuer:
        return False
    try:
        cert.verify_directly_issued_by(cert)
    except (ValueError, TypeError, InvalidSignature):
        return False
    return True


def _issuer_in(cert: x509.Certificate, bundle: Sequence[x509.Certificate]) -> Optional[x509.Certificate]:
    for candidate in bundle:
        if candidate.subject != cert.issuer:
            continue
        try:
            cert.verify_directly_issued_by(candidate)
        except (ValueError, TypeError, InvalidSignature):
            continue
        return candidate
    return None


def chains_to(cert: x509.Certificate, bundle: Sequence[x509.Certificate]) -> bool:
    """
    True when *cert* is signed, directly or through intermediates found in
    *bundle*, by a self-signed root that is also in *bundle*.
    """
    current = cert
    for _ in range(len(bundle) + 1):
        issuer = _issuer_in(current, bundle)
        if issuer is None:
            return False
        if _is_self_signed(issuer):
            return True
        current = issuer
    return False


def moduli_match(cert: x509.Certificate, key) -> bool:
    cert_pub = cert.public_key()
    if isinstance(cert_pub, rsa.RSAPublicKey) and isinstance(key, rsa.RSAPrivateKey):
        return cert_pub.public_numbers().n == key.public_key().public_numbers().n

    fmt = (serialization.Encoding.DER, serialization.PublicFormat.SubjectPublicKeyInfo)
    return cert_pub.public_bytes(*fmt) == key.public_key().public_bytes(*fmt)


def verify_pair(cert_path: Path, key_path: Path, ca_path: Path) -> None:
    """Raise CertificateError unless the pair belongs together and chains to the CA bundle."""
    cert = load_certificate(cert_path)
    key = load_private_key(key_path)

    if not moduli_match(cert, key):
        raise CertificateError(f"{cert_path} and {key_path} do not share a public key")
    if not chains_to(cert, load_bundle(ca_path)):
        raise CertificateError(f"{cert_path} does not chain to the CA bundle {ca_path}")


# ---------------------------------------------------------------------
# Peer chain probe
# ---------------------------------------------------------------------
def _unverified_context() -> ssl.SSLContext:
    ctx = ssl.create_default_context()
    ctx.check_hostname = False
    ctx.verify_mode = ssl.CERT_NONE
    return ctx


def fetch_peer_chain(host: str, port: int, timeout: float = 15.0) -> List[bytes]:
    """
    DER certificates presented by host:port, leaf first. No verification is
    done; the point is to learn which CA the bootstrap host is using.
    """
    with socket.create_connection((host, port), timeout=timeout) as sock:
        with _unverified_context().wrap_socket(sock, server_hostname=host) as tls:
            chain_fn = getattr(tls, "get_unverified_chain", None)
            if chain_fn is not None:
                chain = chain_fn() or []
                if chain:
                    return [bytes(c) for c in chain]
            leaf = tls.getpeercert(binary_form=True)
            return [leaf] if leaf else []


def to_pem(ders: Iterable[bytes]) -> bytes:
    return b"".join(
        x509.load_der_x509_certificate(der).public_bytes(serialization.Encoding.PEM)
        for der in ders
    )
