"""
MQTT Seeder entrypoint.

CLI:
  mqtt-seeder run        -> load mappings, seed and watch topics until SIGINT/SIGTERM
  mqtt-seeder mappings   -> print the unique (tag, topic) pairs and exit (no broker)
"""

from __future__ import annotations

import argparse
import json
import logging
import signal
import threading
from dataclasses import asdict, dataclass
from importlib.metadata import PackageNotFoundError, version as pkg_version
from pathlib import Path
from typing import Optional

from mqtt_seeder.log_config import configure_logging

configure_logging()
logger = logging.getLogger(__name__)


def get_version_string() -> str:
    try:
        return pkg_version("mqtt-seeder")
    except PackageNotFoundError:
        return "0.0.0+dev"


@dataclass
class Runtime:
    shutdown: threading.Event
    session: Optional[object] = None


def _install_signal_handlers(rt: Runtime) -> None:
    def _handler(signum: int, frame) -> None:  # frame is unused, keep signature
        logger.info("Received signal %s; requesting shutdown", signum)
        rt.shutdown.set()

    signal.signal(signal.SIGINT, _handler)
    signal.signal(signal.SIGTERM, _handler)


def run_seeder(config_dir: Optional[Path] = None) -> int:
    """
    Runtime mode: load mappings, open the MQTT session, block until shutdown.
    Returns process exit code.
    """
    from mqtt_seeder.config import ConfigError, load_config
    from mqtt_seeder.log_config import apply_log_level, level_from_env
    from mqtt_seeder.mappings import MappingLoadError, load_mappings
    from mqtt_seeder.router import MessageRouter
    from mqtt_seeder.session import ReconnectPolicy, SeederSession

    try:
        cfg = load_config()
    except ConfigError as exc:
        logger.error("Invalid configuration: %s", exc)
        return 1
    apply_log_level(level_from_env(cfg.log_level))

    source_dir = config_dir or cfg.config_dir
    try:
        mappings = load_mappings(source_dir)
    except MappingLoadError as exc:
        logger.error("Cannot load topic mappings: %s", exc)
        return 1

    rt = Runtime(shutdown=threading.Event())
    _install_signal_handlers(rt)

    logger.info("============================================================")
    logger.info("MQTT Seeder")
    logger.info("Version: %s", get_version_string())
    logger.info("Broker: %s", cfg.broker.display_url)
    logger.info("Config dir: %s (%d mappings)", source_dir, len(mappings))
    logger.info("============================================================")

    session = SeederSession(
        cfg.broker,
        mappings,
        MessageRouter(mappings),
        client_id=cfg.client_id,
        keepalive=cfg.keepalive_s,
        subscribe_qos=cfg.subscribe_qos,
        reconnect=ReconnectPolicy(interval_s=cfg.reconnect_interval_s),
    )
    rt.session = session

    if not session.open():
        logger.error("MQTT session could not be started")
        return 1

    logger.info("Seeder running (shutdown via SIGINT/SIGTERM)")

    try:
        while not rt.shutdown.is_set():
            rt.shutdown.wait(0.5)
    finally:
        _shutdown(rt)

    return 0


def show_mappings(config_dir: Optional[Path] = None) -> int:
    """Print the unique mappings that `run` would seed. Returns process exit code."""
    from mqtt_seeder.config import config_dir_from_env
    from mqtt_seeder.mappings import MappingLoadError, load_mappings, unique_mappings

    source_dir = config_dir or config_dir_from_env()
    try:
        mappings = load_mappings(source_dir)
    except MappingLoadError as exc:
        logger.error("Cannot load topic mappings: %s", exc)
        return 1

    print(json.dumps([asdict(m) for m in unique_mappings(mappings)], indent=2))
    return 0


def _shutdown(rt: Runtime) -> None:
    logger.info("Shutting down...")
    if rt.session:
        try:
            rt.session.close()
        except Exception:
            logger.exception("Error closing MQTT session")


def build_parser() -> argparse.ArgumentParser:
    p = argparse.ArgumentParser(prog="mqtt-seeder")
    p.add_argument("--version", action="version", version=get_version_string())

    sub = p.add_subparsers(dest="cmd", required=True)

    run_parser = sub.add_parser("run", help="Seed topics and log traffic until stopped")
    run_parser.add_argument(
        "--config-dir",
        type=Path,
        metavar="DIR",
        help="Directory of *.json mapping files (default: SEEDER_CONFIG_DIR or ./config)",
    )

    map_parser = sub.add_parser("mappings", help="Print resolved unique mappings as JSON")
    map_parser.add_argument("--config-dir", type=Path, metavar="DIR", help="Directory of *.json mapping files")

    return p


def main(argv: list[str] | None = None) -> None:
    args = build_parser().parse_args(argv)

    if args.cmd == "mappings":
        raise SystemExit(show_mappings(args.config_dir))

    if args.cmd == "run":
        raise SystemExit(run_seeder(args.config_dir))

    raise SystemExit(2)


if __name__ == "__main__":
    main()
