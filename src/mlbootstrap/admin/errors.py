# Copyright 2026 Kezie Iwueke
# SPDX-License-Identifier: Apache-2.0

# src/mlbootstrap/admin/errors.py
class BootstrapError(RuntimeError):
    """Base class for node bootstrap failures."""

class FatalBootstrapError(BootstrapError):
    """Raised when the node cannot make progress; the hook exits non-zero."""

class ConfigError(FatalBootstrapError):
    """Raised when required configuration (credentials, identity) is missing."""

class CertificateError(FatalBootstrapError):
    """Raised when TLS material cannot be selected or fails verification."""

class UnexpectedStatus(BootstrapError):
    """Raised inside retry loops when the admin API answers with the wrong code."""

    def __init__(self, response, expected):
        self.response = response
        self.expected = tuple(expected)
        super().__init__(f"expected {'/'.join(map(str, self.expected))}, got {response.status}")
