# Copyright 2026 Kezie Iwueke
# SPDX-License-Identifier: Apache-2.0

# src/mlbootstrap/observers/interface.py

from __future__ import annotations
from typing import Protocol
from .events import BaseEvent


class Observer(Protocol):
    """Receives every lifecycle event of one hook run, in emission order."""

    def notify(self, event: BaseEvent) -> None: ...
