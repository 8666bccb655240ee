import datetime
from collections import defaultdict, deque

import pytest
import requests
from cryptography import x509
from cryptography.hazmat.primitives import hashes, serialization
from cryptography.hazmat.primitives.asymmetric import rsa
from cryptography.x509.oid import NameOID

from mlbootstrap.admin.client import AdminClient
from mlbootstrap.config.models import (
    AdminCredential,
    BootstrapConfig,
    CertificatePaths,
    ClusterTopology,
    NodeIdentity,
    Timing,
)

SUFFIX = "ml.db.svc.cluster.local"
BOOTSTRAP = f"ml-0.{SUFFIX}"

MUTATING = {"POST", "PUT", "DELETE"}

# ----------------- Fakes for requests -----------------

class FakeResponse:
    def __init__(self, status_code, body=b"", headers=None):
        self.status_code = status_code
        self.content = body.encode() if isinstance(body, str) else body
        self.headers = headers or {}


class FakeSession:
    """
    Scripted replies per (method, url). The last reply for a route repeats;
    an unscripted route answers `fallback` (None means connection refused).
    """

    def __init__(self, fallback=404):
        self.fallback = fallback
        self.routes = defaultdict(deque)
        self.calls = []

    def script(self, method, url, *replies):
        self.routes[(method, url)].extend(replies)
        return self

    def request(self, method, url, **kwargs):
        self.calls.append((method, url, kwargs))
        queue = self.routes.get((method, url))
        if queue:
            reply = queue.popleft() if len(queue) > 1 else queue[0]
        elif self.fallback is None:
            raise requests.ConnectionError(f"connection refused: {url}")
        else:
            reply = self.fallback
        if isinstance(reply, Exception):
            raise reply
        if isinstance(reply, int):
            return FakeResponse(reply)
        return FakeResponse(*reply)

    def called(self, method=None, url=None):
        return [
            c for c in self.calls
            if (method is None or c[0] == method) and (url is None or c[1] == url)
        ]

    @property
    def mutating(self):
        return [c for c in self.calls if c[0] in MUTATING]


class SleepRecorder:
    def __init__(self):
        self.calls = []

    def __call__(self, seconds):
        self.calls.append(seconds)


# ----------------- Builders -----------------

def make_config(
    ordinal=0,
    *,
    cluster_type="bootstrap",
    group_name="Default",
    tmp_path=None,
    **topology,
):
    node = NodeIdentity.from_instance_name(
        f"ml-{ordinal}" if cluster_type == "bootstrap" else f"dnode-{ordinal}",
        SUFFIX,
        bootstrap_group=cluster_type == "bootstrap",
    )
    certs = {}
    if tmp_path is not None:
        certs = dict(
            ca_source_dir=tmp_path / "ca-cert-secret",
            server_cert_dir=tmp_path / "server-cert-secrets",
            certs_dir=tmp_path / "marklogic-certs",
            join_ca_file=tmp_path / "marklogic-certs" / "cacert.pem",
        )
    return BootstrapConfig(
        credential=AdminCredential(username="admin", password="s3cret"),
        node=node,
        topology=ClusterTopology(
            bootstrap_host=BOOTSTRAP,
            group_name=group_name,
            cluster_type=cluster_type,
            **topology,
        ),
        timing=Timing(n_retry=3, retry_interval=0.5, group_wait_attempts=3, group_wait_interval=2.0),
        certificates=CertificatePaths(**certs),
    )


def with_certs(cfg, **changes):
    return cfg.model_copy(update={"certificates": cfg.certificates.model_copy(update=changes)})


@pytest.fixture
def sleep():
    return SleepRecorder()


@pytest.fixture
def session():
    return FakeSession()


@pytest.fixture
def client_for(session, sleep):
    def _make(cfg):
        return AdminClient.from_config(cfg, session=session, sleep=sleep)
    return _make


# ----------------- Certificates -----------------

def _name(cn):
    return x509.Name([x509.NameAttribute(NameOID.COMMON_NAME, cn)])


def new_key():
    return rsa.generate_private_key(public_exponent=65537, key_size=2048)


def issue(cn, key, *, issuer_cert=None, issuer_key=None, ca=False):
    """Self-signed when no issuer is given."""
    now = datetime.datetime.now(datetime.timezone.utc)
    builder = (
        x509.CertificateBuilder()
        .subject_name(_name(cn))
        .issuer_name(issuer_cert.subject if issuer_cert else _name(cn))
        .public_key(key.public_key())
        .serial_number(x509.random_serial_number())
        .not_valid_before(now - datetime.timedelta(minutes=5))
        .not_valid_after(now + datetime.timedelta(days=30))
        .add_extension(x509.BasicConstraints(ca=ca, path_length=None), critical=True)
    )
    return builder.sign(issuer_key or key, hashes.SHA256())


def cert_pem(cert):
    return cert.public_bytes(serialization.Encoding.PEM)


def key_pem(key):
    return key.private_bytes(
        serialization.Encoding.PEM,
        serialization.PrivateFormat.TraditionalOpenSSL,
        serialization.NoEncryption(),
    )


@pytest.fixture(scope="session")
def pki():
    """A root CA and its key, shared by the certificate tests."""
    ca_key = new_key()
    return issue("Test Root CA", ca_key, ca=True), ca_key
