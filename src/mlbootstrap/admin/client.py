# Copyright 2026 Kezie Iwueke
# SPDX-License-Identifier: Apache-2.0

# src/mlbootstrap/admin/client.py

from __future__ import annotations

import logging
import time
from dataclasses import dataclass, field
from pathlib import Path
from typing import Any, Callable, Dict, Iterable, Optional, Union
from urllib.parse import urlsplit, urlunsplit

import requests

from mlbootstrap.config.models import AdminCredential, BootstrapConfig, Timing
from mlbootstrap.utils.retry import RetryError, retry
from .auth import AnyAuth
from .errors import FatalBootstrapError, UnexpectedStatus

log = logging.getLogger("mlbootstrap")


@dataclass
class AdminResponse:
    status: int                 # 0 when the request never got an answer
    body: bytes = b""
    headers: Dict[str, str] = field(default_factory=dict)
    url: str = ""

    @property
    def text(self) -> str:
        return self.body.decode("utf-8", errors="replace")

    @property
    def ok(self) -> bool:
        return 200 <= self.status < 300


class AdminClient:
    """
    Thin wrapper over a requests.Session for the admin API.

    - every authenticated call carries the shared admin credential
    - transport errors come back as status 0 instead of raising, so poll
      loops treat them like any other unexpected code
    - with TLS-join enabled, the remote bootstrap host is always https; this
      node's own ports start on http and are upgraded once they answer 403
    """

    def __init__(
        self,
        *,
        credential: AdminCredential,
        local_host: str,
        bootstrap_host: str,
        tls_enabled: bool = False,
        ca_file: Optional[Path] = None,
        timing: Timing = Timing(),
        session: Optional[requests.Session] = None,
        sleep: Callable[[float], None] = time.sleep,
    ):
        self.local_host = local_host
        self.bootstrap_host = bootstrap_host
        self.tls_enabled = tls_enabled
        self.ca_file = ca_file
        self.timing = timing
        self.session = session or requests.Session()
        self.sleep = sleep
        self._auth = AnyAuth(credential.username, credential.password)
        self._secure: set[tuple[str, int]] = set()

    @classmethod
    def from_config(
        cls,
        cfg: BootstrapConfig,
        *,
        session: Optional[requests.Session] = None,
        sleep: Callable[[float], None] = time.sleep,
    ) -> "AdminClient":
        return cls(
            credential=cfg.credential,
            local_host=cfg.node.fqdn,
            bootstrap_host=cfg.topology.bootstrap_host,
            tls_enabled=cfg.topology.join_tls_enabled,
            ca_file=cfg.certificates.join_ca_file,
            timing=cfg.timing,
            session=session,
            sleep=sleep,
        )

    # -----------------------
    # URLs
    # -----------------------
    def scheme(self, host: str, port: int) -> str:
        if not self.tls_enabled:
            return "http"
        if host == self.bootstrap_host and host != self.local_host:
            return "https"
        return "https" if (host, port) in self._secure else "http"

    def url(self, host: str, port: int, path: str, *, scheme: Optional[str] = None) -> str:
        return f"{scheme or self.scheme(host, port)}://{host}:{port}{path}"

    def _verify(self) -> Union[str, bool]:
        if self.ca_file and Path(self.ca_file).is_file():
            return str(self.ca_file)
        return False

    # -----------------------
    # Requests
    # -----------------------
    def _send(self, method: str, url: str, *, auth: bool, **kwargs: Any) -> AdminResponse:
        log.debug(f"[admin] {method} {url}")
        try:
            r = self.session.request(
                method,
                url,
                auth=self._auth if auth else None,
                timeout=self.timing.request_timeout,
                verify=self._verify(),
                **kwargs,
            )
        except requests.RequestException as exc:
            log.debug(f"[admin] {method} {url} failed: {exc}")
            return AdminResponse(status=0, url=url)

        log.debug(f"[admin] {method} {url} -> {r.status_code}")
        return AdminResponse(
            status=r.status_code,
            body=r.content or b"",
            headers=dict(r.headers),
            url=url,
        )

    def request(
        self,
        method: str,
        url: str,
        *,
        auth: bool = True,
        upgrade: bool = True,
        data: Any = None,
        json: Any = None,
        headers: Optional[Dict[str, str]] = None,
    ) -> AdminResponse:
        """
        Single call, no retries. A plain-http call answered with 403 while
        TLS-join is enabled means the port has moved to TLS: remember it and
        repeat the call once over https.
        """
        kwargs = {"data": data, "json": json, "headers": headers}
        resp = self._send(method, url, auth=auth, **kwargs)

        if upgrade and self.tls_enabled and resp.status == 403 and url.startswith("http://"):
            parts = urlsplit(url)
            self._secure.add((parts.hostname, parts.port))
            log.info(f"[admin] {parts.hostname}:{parts.port} is serving TLS, switching to https")
            resp = self._send(method, urlunsplit(parts._replace(scheme="https")), auth=auth, **kwargs)
        return resp

    def get(self, url: str, **kwargs: Any) -> AdminResponse:
        return self.request("GET", url, **kwargs)

    def retry_validate(
        self,
        method: str,
        url: str,
        expected: Union[int, Iterable[int]],
        *,
        retries: Optional[int] = None,
        interval: Optional[float] = None,
        fatal: bool = True,
        **kwargs: Any,
    ) -> AdminResponse:
        """
        Repeat the call until it answers with an expected code.

        Exhaustion raises FatalBootstrapError, or with fatal=False returns the
        last response so the caller can decide.
        """
        codes = (expected,) if isinstance(expected, int) else tuple(expected)
        retries = retries or self.timing.n_retry
        interval = self.timing.retry_interval if interval is None else interval

        def _on_retry(attempt: int, exc: Exception) -> None:
            log.debug(f"[admin] {method} {url} attempt {attempt}/{retries}: {exc}")

        @retry(
            retries=retries,
            delay=interval,
            retry_on=(UnexpectedStatus,),
            on_retry=_on_retry,
            sleep=self.sleep,
        )
        def _attempt() -> AdminResponse:
            resp = self.request(method, url, **kwargs)
            if resp.status not in codes:
                raise UnexpectedStatus(resp, codes)
            return resp

        try:
            return _attempt()
        except RetryError as exc:
            last: AdminResponse = exc.__cause__.response
            msg = (
                f"{method} {url} did not answer {'/'.join(map(str, codes))} "
                f"after {exc.attempts} attempts (last status {last.status})"
            )
            if fatal:
                raise FatalBootstrapError(msg) from exc
            log.warning(f"[admin] {msg}")
            return last
