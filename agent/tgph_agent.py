#!/usr/bin/env python3
"""
TGPH Agent

Periodic telemetry sampler. Every cycle it:
- Collects host metrics (disks, network, thermal, CPU, memory, OS identity)
- Appends them to a bounded TGPH column store
- Optionally replaces the sensor columns with the latest external sensor batch
- Rewrites the series file (optionally gzip-compressed)

On startup the previous series file is loaded and appended to.

Usage:
    python3 tgph_agent.py [--config CONFIG_PATH] [--output PATH] [--once]
"""

import asyncio
import argparse
import copy
import logging
import signal
import sys
from pathlib import Path
from typing import Any, Dict, List, Optional

import structlog
import yaml

from storage import SeriesFile
from telemetry import SensorBatch, SensorFeed, SystemCollector
from tgph import ContainerTypeError, ElementType, Store, TGPHDecodeError

logger = structlog.get_logger(__name__)

ON_CORRUPT_CHOICES = ("reset", "fail")

DEFAULT_CONFIG: Dict[str, Any] = {
    "agent": {"name": "tgph-agent", "version": "1.0.0"},
    "storage": {
        "path": "data.tgph",
        "compress": False,
        "entry_limit": 1000,
        "on_corrupt": "reset",
    },
    "telemetry": {"interval": 15, "include_loopback": True},
    "sensor": {"url": None, "timeout": 5.0},
    "logging": {"level": "INFO"},
}


class ConfigError(ValueError):
    """Raised for invalid agent configuration."""


def configure_logging(level: str = "INFO") -> None:
    """Configure stdlib logging and structlog JSON output."""
    logging.basicConfig(format="%(message)s", stream=sys.stdout, level=level.upper())
    structlog.configure(
        processors=[
            structlog.stdlib.filter_by_level,
            structlog.stdlib.add_logger_name,
            structlog.stdlib.add_log_level,
            structlog.stdlib.PositionalArgumentsFormatter(),
            structlog.processors.TimeStamper(fmt="iso"),
            structlog.processors.StackInfoRenderer(),
            structlog.processors.format_exc_info,
            structlog.processors.UnicodeDecoder(),
            structlog.processors.JSONRenderer()
        ],
        wrapper_class=structlog.stdlib.BoundLogger,
        context_class=dict,
        logger_factory=structlog.stdlib.LoggerFactory(),
        cache_logger_on_first_use=True,
    )


# =========================================
# Configuration
# =========================================

def _merge(base: dict, override: dict) -> dict:
    """Recursively merge ``override`` into a copy of ``base``."""
    merged = copy.deepcopy(base)
    for key, value in override.items():
        if isinstance(value, dict) and isinstance(merged.get(key), dict):
            merged[key] = _merge(merged[key], value)
        else:
            merged[key] = value
    return merged


def load_config(config_path: str) -> dict:
    """Load configuration from a YAML file layered over the defaults."""
    path = Path(config_path)
    if not path.exists():
        logger.warning("Config file not found, using defaults", path=config_path)
        return copy.deepcopy(DEFAULT_CONFIG)

    with open(path, "r") as f:
        loaded = yaml.safe_load(f) or {}

    if not isinstance(loaded, dict):
        raise ConfigError(f"Config file {config_path} must contain a mapping")

    logger.info("Configuration loaded", path=config_path)
    return _merge(DEFAULT_CONFIG, loaded)


def validate_config(config: dict) -> dict:
    """Check the values the agent depends on."""
    for section in ("agent", "storage", "telemetry", "sensor", "logging"):
        if not isinstance(config.get(section), dict):
            raise ConfigError(f"Config section '{section}' must be a mapping")

    storage_cfg = config["storage"]
    interval = config["telemetry"]["interval"]
    entry_limit = storage_cfg["entry_limit"]

    if isinstance(interval, bool) or not isinstance(interval, (int, float)) or interval <= 0:
        raise ConfigError(f"telemetry.interval must be a positive number, got {interval!r}")
    if isinstance(entry_limit, bool) or not isinstance(entry_limit, int) or entry_limit < 1:
        raise ConfigError(f"storage.entry_limit must be a positive integer, got {entry_limit!r}")
    if storage_cfg["on_corrupt"] not in ON_CORRUPT_CHOICES:
        raise ConfigError(
            f"storage.on_corrupt must be one of {ON_CORRUPT_CHOICES}, "
            f"got {storage_cfg['on_corrupt']!r}"
        )
    if not storage_cfg["path"]:
        raise ConfigError("storage.path must not be empty")
    return config


def apply_overrides(config: dict, args: argparse.Namespace) -> dict:
    """Layer command-line options over the loaded configuration."""
    config = copy.deepcopy(config)
    if args.output is not None:
        config["storage"]["path"] = args.output
    if args.interval is not None:
        config["telemetry"]["interval"] = args.interval
    if args.entry_limit is not None:
        config["storage"]["entry_limit"] = args.entry_limit
    if args.compress is not None:
        config["storage"]["compress"] = args.compress
    if args.sensor_url is not None:
        config["sensor"]["url"] = args.sensor_url
    return config


# =========================================
# Agent
# =========================================

class TelemetryAgent:
    """Owns the series store and runs the sampling loop."""

    def __init__(self, config: dict):
        self.config = validate_config(config)
        storage_cfg = self.config["storage"]

        self.entry_limit: int = storage_cfg["entry_limit"]
        self._interval = self.config["telemetry"]["interval"]
        self._on_corrupt = storage_cfg["on_corrupt"]

        self.series_file = SeriesFile(storage_cfg["path"], compress=storage_cfg["compress"])
        self.collector = SystemCollector(self.config)
        self.sensor_feed = SensorFeed(self.config)
        self.store = Store(entry_limit=self.entry_limit)
        self.snapshots = 0

        self.running = False
        self._collection_task: Optional[asyncio.Task] = None
        self._shutdown_event = asyncio.Event()

    @property
    def is_running(self) -> bool:
        return self.running

    def load(self) -> Store:
        """Load the previous series, falling back to an empty store if allowed."""
        try:
            self.store = self.series_file.load(self.entry_limit)
        except TGPHDecodeError as e:
            if self._on_corrupt == "fail":
                raise
            backup = self.series_file.path.with_name(self.series_file.path.name + ".corrupt")
            self.series_file.path.replace(backup)
            logger.error(
                "Series file is corrupt, starting empty",
                path=str(self.series_file.path),
                backup=str(backup),
                error=str(e),
            )
            self.store = Store(entry_limit=self.entry_limit)

        # A lowered limit only trims on the next append
        self.snapshots = min(self.store.sample_count(), self.entry_limit)
        return self.store

    def record(self, samples: List) -> None:
        """Append one cycle's samples to the store."""
        for sample in samples:
            self.store.append(sample.value, sample.name)

    def apply_sensor_batch(self, batch: SensorBatch) -> None:
        """Replace the sensor columns with the newest part of ``batch``."""
        window = batch.tail(self.entry_limit)
        self.store.replace(window.timestamps, "sensor_timestamp", element_type=ElementType.U32)
        self.store.replace(window.values, "sensor_value", element_type=ElementType.FLOAT32)

    async def save(self) -> int:
        """Write the store without blocking the event loop."""
        loop = asyncio.get_running_loop()
        return await loop.run_in_executor(None, self.series_file.save, self.store)

    async def run_cycle(self) -> int:
        """Run one sampling cycle and return the snapshot count."""
        self.record(self.collector.collect())

        batch = await self.sensor_feed.fetch()
        if batch is not None:
            self.apply_sensor_batch(batch)

        size = await self.save()
        self.snapshots += 1
        logger.info(
            "Snapshot saved",
            snapshots=self.snapshots,
            path=str(self.series_file.path),
            bytes=size,
        )
        return self.snapshots

    async def _collection_loop(self) -> None:
        """Main collection loop."""
        loop = asyncio.get_running_loop()
        try:
            while self.running:
                start_time = loop.time()
                try:
                    await self.run_cycle()
                except ContainerTypeError:
                    # A metric name reused for another kind of value; a bug, not data.
                    raise
                except Exception as e:
                    logger.exception("Collection error", error=str(e))

                elapsed = loop.time() - start_time
                await asyncio.sleep(max(0, self._interval - elapsed))
        except Exception:
            # Wake start() so the failure surfaces instead of hanging
            self._shutdown_event.set()
            raise

    async def run_once(self) -> int:
        """Load, sample once, save and close."""
        self.load()
        await self.sensor_feed.start()
        try:
            return await self.run_cycle()
        finally:
            await self.sensor_feed.stop()

    async def start(self) -> None:
        """Start the agent and block until it is stopped."""
        logger.info(
            "Starting TGPH agent",
            version=self.config["agent"]["version"],
            path=str(self.series_file.path),
            interval=self._interval,
            entry_limit=self.entry_limit,
        )
        self.load()
        await self.sensor_feed.start()

        self.running = True
        self._collection_task = asyncio.create_task(self._collection_loop())
        logger.info("TGPH agent started", snapshots=self.snapshots)

        await self._shutdown_event.wait()

        task = self._collection_task
        if task.done() and not task.cancelled() and task.exception() is not None:
            raise task.exception()

    async def stop(self) -> None:
        """Stop the loop and write a final snapshot of the store."""
        logger.info("Stopping TGPH agent")
        self.running = False

        if self._collection_task:
            self._collection_task.cancel()
            try:
                await self._collection_task
            except asyncio.CancelledError:
                pass

        await self.sensor_feed.stop()
        await self.save()

        self._shutdown_event.set()
        logger.info("TGPH agent stopped", snapshots=self.snapshots)

    def handle_signal(self, signum, frame):
        """Handle shutdown signals."""
        logger.info("Received signal", signal=signum)
        asyncio.create_task(self.stop())


# =========================================
# Entry point
# =========================================

def build_parser() -> argparse.ArgumentParser:
    parser = argparse.ArgumentParser(description="TGPH telemetry sampler")
    parser.add_argument(
        "--config", "-c",
        default="config.yaml",
        help="Path to configuration file"
    )
    parser.add_argument("--output", "-o", help="Series file path")
    parser.add_argument("--interval", "-i", type=float, help="Seconds between snapshots")
    parser.add_argument(
        "--entry-limit", "-n",
        type=int,
        help="Maximum samples kept per column"
    )
    parser.add_argument(
        "--gzip",
        dest="compress",
        action=argparse.BooleanOptionalAction,
        default=None,
        help="Gzip the series file"
    )
    parser.add_argument("--sensor-url", help="External sensor endpoint")
    parser.add_argument("--once", action="store_true", help="Take one snapshot and exit")
    return parser


async def main(argv: Optional[List[str]] = None) -> int:
    """Main entry point."""
    args = build_parser().parse_args(argv)

    try:
        config = apply_overrides(load_config(args.config), args)
        configure_logging(config["logging"].get("level", "INFO"))
        agent = TelemetryAgent(config)
    except (ConfigError, yaml.YAMLError) as e:
        logger.error("Invalid configuration", error=str(e))
        return 2

    if args.once:
        await agent.run_once()
        return 0

    # Register signal handlers
    signal.signal(signal.SIGTERM, agent.handle_signal)
    signal.signal(signal.SIGINT, agent.handle_signal)

    try:
        await agent.start()
    except Exception as e:
        logger.exception("Agent failed", error=str(e))
        return 1
    return 0


def run() -> None:
    """Console script entry point."""
    sys.exit(asyncio.run(main()))


if __name__ == "__main__":
    run()
