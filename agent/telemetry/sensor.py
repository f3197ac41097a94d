"""
TGPH Agent - Sensor Feed

Polls an external HTTP sensor that reports its recent history on every
request. The whole batch replaces the sensor columns instead of being
appended reading by reading.

Accepted payloads:
    {"readings": [{"timestamp": 1700000000, "value": 21.5}, ...]}
    [{"timestamp": 1700000000, "value": 21.5}, ...]
"""

from dataclasses import dataclass, field
from typing import Any, List, Optional

import httpx
import structlog

logger = structlog.get_logger(__name__)


class SensorFeedError(Exception):
    """Raised when the sensor response cannot be used."""


@dataclass
class SensorBatch:
    """Sensor history, oldest reading first."""
    timestamps: List[int] = field(default_factory=list)
    values: List[float] = field(default_factory=list)

    def __len__(self) -> int:
        return len(self.timestamps)

    def tail(self, count: int) -> "SensorBatch":
        """Keep only the newest ``count`` readings."""
        if count >= len(self):
            return self
        return SensorBatch(self.timestamps[-count:], self.values[-count:])


def parse_readings(payload: Any) -> SensorBatch:
    """Turn a decoded JSON payload into a sorted SensorBatch."""
    if isinstance(payload, dict):
        payload = payload.get("readings")
    if not isinstance(payload, list):
        raise SensorFeedError("Expected a list of readings")

    pairs = []
    for index, item in enumerate(payload):
        if not isinstance(item, dict):
            raise SensorFeedError(f"Reading {index} is not an object")
        try:
            timestamp = int(item["timestamp"])
            value = float(item["value"])
        except (KeyError, TypeError, ValueError) as e:
            raise SensorFeedError(f"Reading {index} is malformed: {e}") from e
        if not 0 <= timestamp <= 0xFFFFFFFF:
            raise SensorFeedError(f"Reading {index} timestamp {timestamp} out of range")
        pairs.append((timestamp, value))

    pairs.sort(key=lambda p: p[0])
    return SensorBatch([p[0] for p in pairs], [p[1] for p in pairs])


class SensorFeed:
    """HTTP client for the external sensor."""

    def __init__(self, config: dict, transport: Optional[httpx.AsyncBaseTransport] = None):
        self.config = config.get("sensor", {})
        self._url = self.config.get("url")
        self._timeout = self.config.get("timeout", 5.0)
        self._transport = transport
        self._client: Optional[httpx.AsyncClient] = None

    @property
    def enabled(self) -> bool:
        return bool(self._url)

    @property
    def url(self) -> Optional[str]:
        return self._url

    async def start(self) -> None:
        """Open the HTTP client."""
        if not self.enabled:
            return
        self._client = httpx.AsyncClient(timeout=self._timeout, transport=self._transport)
        logger.info("Sensor feed enabled", url=self._url)

    async def stop(self) -> None:
        """Close the HTTP client."""
        if self._client:
            await self._client.aclose()
            self._client = None

    async def fetch(self) -> Optional[SensorBatch]:
        """Fetch the current batch, or None if the sensor could not be read."""
        if not self.enabled:
            return None
        if self._client is None:
            await self.start()

        try:
            response = await self._client.get(self._url)
            response.raise_for_status()
            batch = parse_readings(response.json())
        except httpx.HTTPError as e:
            logger.warning("Sensor request failed", url=self._url, error=str(e))
            return None
        except (ValueError, SensorFeedError) as e:
            logger.warning("Sensor response rejected", url=self._url, error=str(e))
            return None

        logger.debug("Sensor batch fetched", readings=len(batch))
        return batch
