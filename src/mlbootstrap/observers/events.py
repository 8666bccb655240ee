# src/mlbootstrap/observers/events.py

from __future__ import annotations
from dataclasses import dataclass, asdict
from typing import Dict, Any, Optional
from datetime import datetime, timezone
import uuid


# ---------------------------------------------------------------------
# Base context and helper
# ---------------------------------------------------------------------
@dataclass(frozen=True)
class BaseEvent:
    ts: str           # ISO timestamp
    run_id: str       # correlates all events of one hook invocation
    host: str         # this node's fqdn
    group: str        # node-group name

    def dict(self) -> Dict[str, Any]:
        return asdict(self)


def new_ctx(host: str, group: str, run_id: Optional[str] = None) -> Dict[str, Any]:
    return {
        "ts": datetime.now(timezone.utc).isoformat(timespec="seconds").replace("+00:00", "Z"),
        "run_id": run_id or str(uuid.uuid4()),
        "host": host,
        "group": group,
    }


# ---------------------------------------------------------------------
# Coordinator phases
# ---------------------------------------------------------------------
@dataclass(frozen=True)
class PhaseStarted(BaseEvent):
    phase: str

@dataclass(frozen=True)
class PhaseSucceeded(BaseEvent):
    phase: str
    duration_ms: int

@dataclass(frozen=True)
class PhaseSkipped(BaseEvent):
    phase: str
    reason: str

@dataclass(frozen=True)
class PhaseFailed(BaseEvent):
    phase: str
    error: str

@dataclass(frozen=True)
class BootstrapSummary(BaseEvent):
    path: str            # "bootstrap" | "join"
    status: str          # "DONE" | "FAILED"
    error: Optional[str] = None


# ---------------------------------------------------------------------
# Cluster membership
# ---------------------------------------------------------------------
@dataclass(frozen=True)
class RestartConfirmed(BaseEvent):
    hostname: str
    baseline: str
    current: str
    attempts: int

@dataclass(frozen=True)
class SecurityInitialized(BaseEvent):
    already: bool

@dataclass(frozen=True)
class GroupUpdated(BaseEvent):
    name: str
    previous: str
    status: int

@dataclass(frozen=True)
class GroupCreated(BaseEvent):
    name: str
    status: int

@dataclass(frozen=True)
class NodeJoined(BaseEvent):
    bootstrap_host: str
    already: bool


# ---------------------------------------------------------------------
# Certificates
# ---------------------------------------------------------------------
@dataclass(frozen=True)
class CertificatePlaced(BaseEvent):
    mode: str            # "named" | "self-signed"
    source: Optional[str] = None

@dataclass(frozen=True)
class CertificateActivated(BaseEvent):
    mode: str
    template: str
    servers_switched: int
