# src/mlbootstrap/cli/app.py
from __future__ import annotations

import logging
from pathlib import Path
from typing import Optional, Tuple

import typer

from mlbootstrap.admin.client import AdminClient
from mlbootstrap.admin.errors import ConfigError, FatalBootstrapError
from mlbootstrap.bootstrap.coordinator import NodeBootstrapCoordinator
from mlbootstrap.bootstrap.lifecycle import liveness as check_liveness
from mlbootstrap.bootstrap.lifecycle import prestop as request_shutdown
from mlbootstrap.certs.placement import CertificatePlacer
from mlbootstrap.config.loader import load_config
from mlbootstrap.config.models import BootstrapConfig
from mlbootstrap.logging.log import init_logging
from mlbootstrap.observers.dispatcher import EventBus
from mlbootstrap.observers.jsonfile import JsonFileObserver
from mlbootstrap.observers.logger import LoggerObserver

log = logging.getLogger("mlbootstrap")


# ------------------------------------------------------------------------------
# CLI setup
# ------------------------------------------------------------------------------

app = typer.Typer(help="MarkLogic node bootstrap hooks")

ConfigOption = typer.Option(None, "--config", "-c", help="YAML file merged over the environment")
DebugOption = typer.Option(False, "--debug", help="DEBUG output on the console")


def _start(hook: str, config: Optional[Path], debug: bool, *, to_file: bool = True) -> Tuple[BootstrapConfig, str, EventBus]:
    """
    Load configuration, then set up logging and the event bus for one hook
    invocation. Configuration errors are logged to the console and exit 1.
    """
    try:
        cfg = load_config(config)
    except ConfigError as exc:
        init_logging(hook=hook, verbose=debug, to_file=False)
        log.error(f"[{hook}] {exc}")
        raise typer.Exit(code=1)

    logger, run_id, _ = init_logging(base_dir=cfg.log_dir, hook=hook, verbose=debug, to_file=to_file)

    observers = [LoggerObserver(logger)]
    if cfg.events_file:
        observers.append(JsonFileObserver(cfg.events_file))
    return cfg, run_id, EventBus(observers=observers)


# ------------------------------------------------------------------------------
# Commands
# ------------------------------------------------------------------------------

@app.command()
def poststart(config: Optional[Path] = ConfigOption, debug: bool = DebugOption):
    """Join or bootstrap the cluster, configure the group and activate TLS."""
    cfg, run_id, bus = _start("poststart", config, debug)
    client = AdminClient.from_config(cfg)
    try:
        NodeBootstrapCoordinator(cfg, client, bus=bus, run_id=run_id).run()
    except FatalBootstrapError as exc:
        log.error(f"[poststart] {cfg.node.fqdn} failed: {exc}")
        raise typer.Exit(code=1)


@app.command("copy-certs")
def copy_certs(config: Optional[Path] = ConfigOption, debug: bool = DebugOption):
    """Place the CA bundle and this node's certificate before the server starts."""
    cfg, run_id, bus = _start("copy-certs", config, debug)
    try:
        CertificatePlacer(cfg, bus=bus).place()
    except FatalBootstrapError as exc:
        log.error(f"[copy-certs] {cfg.node.fqdn} failed: {exc}")
        raise typer.Exit(code=1)


@app.command()
def liveness(config: Optional[Path] = ConfigOption, debug: bool = DebugOption):
    """Exit 0 when the health check endpoint answers 200."""
    cfg, _, _ = _start("liveness", config, debug, to_file=False)
    if not check_liveness(AdminClient.from_config(cfg), cfg.node.fqdn):
        raise typer.Exit(code=1)


@app.command()
def prestop(config: Optional[Path] = ConfigOption, debug: bool = DebugOption):
    """Ask the server for a clean shutdown. Never fails the hook."""
    try:
        cfg, _, _ = _start("prestop", config, debug)
    except typer.Exit:
        return
    request_shutdown(AdminClient.from_config(cfg), cfg.node.fqdn)


if __name__ == "__main__":
    app()
