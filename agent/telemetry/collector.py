"""
TGPH Agent - System Collector

Takes one snapshot of host metrics per call: disks, network interfaces,
thermal sensors, CPU, memory and OS identity.
"""

import platform
import socket
import time
from dataclasses import dataclass
from typing import Dict, List, Tuple, Union

import psutil
import structlog

logger = structlog.get_logger(__name__)

U32_MAX = 0xFFFFFFFF
UNDEFINED = "UNDEFINED"


@dataclass(frozen=True)
class Sample:
    """One labeled scalar reading."""
    name: str
    value: Union[int, float, str]


def clamp_u32(value: float) -> int:
    """Truncate a reading into the u32 range."""
    return max(0, min(int(value), U32_MAX))


class SystemCollector:
    """Collects host metrics with psutil."""

    def __init__(self, config: dict):
        self.config = config.get("telemetry", {})
        self._include_loopback = self.config.get("include_loopback", True)
        self._last_net: Dict[str, Tuple[int, int]] = {}

        # Prime cpu_percent so later non-blocking calls measure the interval
        try:
            psutil.cpu_percent(interval=None)
        except (psutil.Error, OSError) as e:
            logger.warning("cpu_percent initial call failed", error=str(e))

    def collect(self) -> List[Sample]:
        """Collect current system metrics as an ordered list of samples."""
        samples: List[Sample] = [Sample("timestamp", clamp_u32(time.time()))]
        samples.extend(self._collect_disks())
        samples.extend(self._collect_network())
        samples.extend(self._collect_thermal())
        samples.extend(self._collect_cpu())
        samples.extend(self._collect_memory())
        samples.extend(self._collect_identity())
        return samples

    # =========================================
    # Sections
    # =========================================

    def _collect_disks(self) -> List[Sample]:
        samples = []
        for partition in psutil.disk_partitions():
            try:
                usage = psutil.disk_usage(partition.mountpoint)
            except (PermissionError, OSError):
                continue
            samples.extend([
                Sample("disk_total_space", clamp_u32(usage.total / (1024 * 1024))),
                Sample("disk_available_space", clamp_u32(usage.free / (1024 * 1024))),
                Sample("disk_name", partition.device or partition.mountpoint),
            ])
        return samples

    def _collect_network(self) -> List[Sample]:
        """Per-interface traffic since the previous call."""
        samples = []
        net_io = psutil.net_io_counters(pernic=True)
        seen = {}
        for iface, counters in net_io.items():
            if iface == "lo" and not self._include_loopback:
                continue
            current = (counters.bytes_recv, counters.bytes_sent)
            previous = self._last_net.get(iface, current)
            seen[iface] = current
            samples.extend([
                Sample("iface_name", iface),
                Sample("iface_received", clamp_u32(_delta(current[0], previous[0]))),
                Sample("iface_transmitted", clamp_u32(_delta(current[1], previous[1]))),
            ])
        self._last_net = seen
        return samples

    def _collect_thermal(self) -> List[Sample]:
        samples = []
        try:
            temps = psutil.sensors_temperatures()
        except (AttributeError, OSError):
            # Not provided on every platform
            return samples

        for chip, readings in temps.items():
            for reading in readings:
                label = f"{chip} {reading.label}" if reading.label else chip
                samples.extend([
                    Sample("thermal_component_name", label),
                    Sample("thermal_component_temp", float(reading.current)),
                ])
        return samples

    def _collect_cpu(self) -> List[Sample]:
        samples = [
            Sample("cpu_count", psutil.cpu_count(logical=True) or 0),
            Sample("cpu_usage", float(psutil.cpu_percent(interval=None))),
        ]
        try:
            load1, _, _ = psutil.getloadavg()
        except (AttributeError, OSError):
            load1 = 0.0
        samples.append(Sample("load_average_1m", float(load1)))
        return samples

    def _collect_memory(self) -> List[Sample]:
        mem = psutil.virtual_memory()
        swap = psutil.swap_memory()
        return [
            Sample("total_memory_kb", clamp_u32(mem.total / 1024)),
            Sample("used_memory_kb", clamp_u32(mem.used / 1024)),
            Sample("total_swap_kb", clamp_u32(swap.total / 1024)),
            Sample("used_swap_kb", clamp_u32(swap.used / 1024)),
        ]

    def _collect_identity(self) -> List[Sample]:
        return [
            Sample("kernel_version", platform.release() or UNDEFINED),
            Sample("os_version", _os_version()),
            Sample("host_name", _host_name()),
            Sample("uptime_seconds", clamp_u32(time.time() - psutil.boot_time())),
        ]


def _delta(current: int, previous: int) -> int:
    # A counter that went backwards was reset; count from zero.
    if current < previous:
        return current
    return current - previous


def _os_version() -> str:
    try:
        release = platform.freedesktop_os_release()
        return release.get("VERSION_ID") or release.get("NAME") or UNDEFINED
    except (AttributeError, OSError):
        return platform.version() or UNDEFINED


def _host_name() -> str:
    try:
        return socket.gethostname() or UNDEFINED
    except OSError:
        return UNDEFINED
