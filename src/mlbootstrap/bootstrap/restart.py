# Copyright 2026 Kezie Iwueke
# SPDX-License-Identifier: Apache-2.0

# src/mlbootstrap/bootstrap/restart.py

from __future__ import annotations

import logging
from typing import Optional

from mlbootstrap.admin import endpoints
from mlbootstrap.admin.client import AdminClient
from mlbootstrap.admin.errors import BootstrapError, FatalBootstrapError
from mlbootstrap.admin.parsers import parse_last_startup
from mlbootstrap.observers.dispatcher import EventBus
from mlbootstrap.observers.events import RestartConfirmed, new_ctx
from mlbootstrap.utils.retry import RetryError, retry

log = logging.getLogger("mlbootstrap")


class RestartPending(BootstrapError):
    pass


class RestartDetector:
    """
    Confirms a restart by watching the server's last-startup token change.

    A 202 "restart triggered" carries no completion signal and the server can
    answer before it reloads, so reachability alone proves nothing.
    """

    def __init__(
        self,
        client: AdminClient,
        *,
        retries: int,
        interval: float,
        bus: Optional[EventBus] = None,
        run_ctx: Optional[dict] = None,
    ):
        self.client = client
        self.retries = retries
        self.interval = interval
        self.bus = bus or EventBus()
        self.run_ctx = run_ctx or new_ctx(client.local_host, "-")

    def capture(self, hostname: str) -> str:
        """Current restart token of *hostname*, '' when it cannot be read."""
        url = self.client.url(hostname, endpoints.ADMIN_PORT, endpoints.TIMESTAMP)
        resp = self.client.get(url)
        if not resp.ok:
            return ""
        return parse_last_startup(resp.text)

    def wait_for_restart(self, hostname: str, baseline: str) -> str:
        attempts = 0

        @retry(retries=self.retries, delay=self.interval, retry_on=(RestartPending,), sleep=self.client.sleep)
        def _poll() -> str:
            nonlocal attempts
            attempts += 1
            current = self.capture(hostname)
            if not current or current == baseline:
                raise RestartPending(f"{hostname} still at {baseline!r}")
            return current

        try:
            current = _poll()
        except RetryError as exc:
            raise FatalBootstrapError(
                f"{hostname} did not restart after {self.retries} checks (baseline {baseline!r})"
            ) from exc

        log.info(f"[restart] {hostname} restarted ({baseline!r} -> {current!r}) after {attempts} check(s)")
        self.bus.emit(
            RestartConfirmed(
                hostname=hostname,
                baseline=baseline,
                current=current,
                attempts=attempts,
                **self.run_ctx,
            )
        )
        return current
