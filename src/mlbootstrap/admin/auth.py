# Copyright 2026 Kezie Iwueke
# SPDX-License-Identifier: Apache-2.0

# src/mlbootstrap/admin/auth.py

from __future__ import annotations

from requests.auth import AuthBase, HTTPBasicAuth, HTTPDigestAuth


class AnyAuth(AuthBase):
    """
    Answer whichever challenge the server issues, like `curl --anyauth`.

    The admin servers start out on digest auth; once path-based routing is
    enabled, Admin/Manage/App-Services are switched to basic. The same
    credential must keep working against both.
    """

    def __init__(self, username: str, password: str):
        self._digest = HTTPDigestAuth(username, password)
        self._basic = HTTPBasicAuth(username, password)

    def __call__(self, r):
        r = self._digest(r)
        r.register_hook("response", self._handle_basic)
        return r

    def _handle_basic(self, r, **kwargs):
        if r.status_code != 401:
            return r
        challenge = r.headers.get("www-authenticate", "").lower()
        if "basic" not in challenge or "digest" in challenge:
            return r

        # Consume content and release the original connection
        # to allow our new request to reuse the same one.
        r.content
        r.close()
        prep = self._basic(r.request.copy())
        _r = r.connection.send(prep, **kwargs)
        _r.history.append(r)
        _r.request = prep
        return _r
