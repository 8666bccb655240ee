import stat
from pathlib import Path

import pytest
from cryptography.hazmat.primitives import serialization

from mlbootstrap.admin.errors import CertificateError
from mlbootstrap.certs.placement import CertificatePlacer, discover
from mlbootstrap.observers.dispatcher import EventBus
from mlbootstrap.observers.events import CertificatePlaced

from conftest import BOOTSTRAP, SUFFIX, cert_pem, issue, key_pem, make_config, new_key, with_certs


class Collect:
    def __init__(self):
        self.events = []

    def notify(self, event):
        self.events.append(event)


def _mount(tmp_path: Path, pki, names):
    ca, ca_key = pki
    (tmp_path / "ca-cert-secret").mkdir()
    (tmp_path / "ca-cert-secret" / "ca.crt").write_bytes(cert_pem(ca))
    certs = tmp_path / "server-cert-secrets"
    certs.mkdir()
    for i, cn in enumerate(names):
        key = new_key()
        (certs / f"tls_{i}.crt").write_bytes(cert_pem(issue(cn, key, issuer_cert=ca, issuer_key=ca_key)))
        (certs / f"tls_{i}.key").write_bytes(key_pem(key))


def _named(ordinal, tmp_path, **kw):
    return with_certs(make_config(ordinal, tmp_path=tmp_path, **kw), self_signed=False)


# ----------------- Named certificates -----------------

def test_named_certificate_placed_and_verified(tmp_path: Path, pki, sleep):
    _mount(tmp_path, pki, [f"ml-1.{SUFFIX}", BOOTSTRAP])
    cfg = _named(0, tmp_path)
    sink = Collect()

    material = CertificatePlacer(cfg, bus=EventBus([sink]), sleep=sleep).place()

    paths = cfg.certificates
    assert material.named
    assert material.cert == paths.placed_cert
    assert paths.placed_cert.read_bytes() == (tmp_path / "server-cert-secrets" / "tls_1.crt").read_bytes()
    assert paths.placed_key.read_bytes() == (tmp_path / "server-cert-secrets" / "tls_1.key").read_bytes()
    assert stat.S_IMODE(paths.placed_key.stat().st_mode) == 0o600
    assert paths.placed_ca.read_bytes() == cert_pem(pki[0])
    (event,) = sink.events
    assert isinstance(event, CertificatePlaced)
    assert event.mode == "named"


def test_no_match_on_bootstrap_instance_is_fatal(tmp_path: Path, pki, sleep):
    _mount(tmp_path, pki, [f"ml-1.{SUFFIX}"])
    cfg = _named(0, tmp_path)

    with pytest.raises(CertificateError, match="CN"):
        CertificatePlacer(cfg, sleep=sleep).place()


def test_no_match_elsewhere_falls_back_to_temporary(tmp_path: Path, pki, sleep):
    _mount(tmp_path, pki, [BOOTSTRAP])
    cfg = _named(2, tmp_path)

    material = CertificatePlacer(cfg, sleep=sleep).place()

    assert material.named
    assert material.cert is None
    assert material.ca == cfg.certificates.placed_ca
    assert not cfg.certificates.placed_key.exists()


def test_mismatched_key_is_fatal(tmp_path: Path, pki, sleep):
    _mount(tmp_path, pki, [BOOTSTRAP])
    (tmp_path / "server-cert-secrets" / "tls_0.key").write_bytes(key_pem(new_key()))
    cfg = _named(0, tmp_path)

    with pytest.raises(CertificateError, match="public key"):
        CertificatePlacer(cfg, sleep=sleep).place()

    # nothing from the rejected pair is left behind
    assert not cfg.certificates.placed_key.exists()
    assert not cfg.certificates.placed_cert.exists()


def test_missing_ca_bundle_is_fatal(tmp_path: Path, sleep):
    cfg = _named(1, tmp_path)

    with pytest.raises(CertificateError, match="ca.crt"):
        CertificatePlacer(cfg, sleep=sleep).place()


# ----------------- Self-signed -----------------

def test_self_signed_joiner_stores_bootstrap_chain(tmp_path: Path, pki, sleep):
    ca, _ = pki
    der = ca.public_bytes(serialization.Encoding.DER)
    calls = []

    def fetch(host, port, timeout):
        calls.append((host, port))
        if len(calls) < 3:
            raise ConnectionRefusedError("not yet")
        return [der]

    cfg = make_config(1, tmp_path=tmp_path)
    material = CertificatePlacer(cfg, fetch_chain=fetch, sleep=sleep).place()

    assert material.mode == "self-signed"
    assert cfg.certificates.placed_ca.read_bytes() == cert_pem(ca)
    assert calls == [(BOOTSTRAP, 8001)] * 3
    assert sleep.calls == [cfg.timing.retry_interval] * 2


def test_self_signed_probe_exhaustion_is_fatal(tmp_path: Path, sleep):
    cfg = make_config(1, tmp_path=tmp_path)

    with pytest.raises(CertificateError, match="certificate chain"):
        CertificatePlacer(cfg, fetch_chain=lambda *a: [], sleep=sleep).place()

    assert len(sleep.calls) == cfg.timing.n_retry - 1


def test_self_signed_bootstrap_host_fetches_nothing(tmp_path: Path, sleep):
    def fetch(*args):
        raise AssertionError("bootstrap host must not probe itself")

    cfg = make_config(0, tmp_path=tmp_path)
    material = CertificatePlacer(cfg, fetch_chain=fetch, sleep=sleep).place()

    assert material.mode == "self-signed"
    assert material.ca is None


def test_discover_reports_placed_files(tmp_path: Path, pki, sleep):
    _mount(tmp_path, pki, [BOOTSTRAP])
    cfg = _named(0, tmp_path)
    CertificatePlacer(cfg, sleep=sleep).place()

    found = discover(cfg)
    assert (found.cert, found.key, found.ca) == (
        cfg.certificates.placed_cert,
        cfg.certificates.placed_key,
        cfg.certificates.placed_ca,
    )

    cfg.certificates.placed_key.unlink()
    assert discover(cfg).key is None
