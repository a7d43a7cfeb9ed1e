"""System-level tools: disk usage, host information, health checks and junk locations."""

import logging
import os
import platform
import shutil
import sys
import tempfile
import threading
import time
from datetime import datetime
from pathlib import Path
from typing import (
    List,
    Optional,
    Tuple,
)

from clearai.core.schema import (
    Parameter,
    ToolDefinition,
)
from clearai.tools import ToolRegistry
from clearai.tools.filesystem import format_size

logger = logging.getLogger(__name__)

DISK_WARNING_PERCENT = 80.0
DISK_CRITICAL_PERCENT = 90.0
MEMORY_WARNING_PERCENT = 80.0
LOAD_WARNING_RATIO = 0.8

_PROCESS_STARTED = time.time()


def _directory_size(root: Path, limit: int = 20000) -> int:
    """Total size of regular files under *root*, visiting at most *limit* files."""
    total = 0
    seen = 0
    for dirpath, _, filenames in os.walk(root):
        for filename in filenames:
            try:
                total += (Path(dirpath) / filename).lstat().st_size
            except OSError:
                continue
            seen += 1
            if seen >= limit:
                return total
    return total


def _read_proc_fields(path: str) -> dict:
    """Parse ``Key: value kB`` lines of a /proc file into bytes (empty if unavailable)."""
    fields = {}
    try:
        with open(path, encoding="utf-8") as handle:
            for line in handle:
                key, _, rest = line.partition(":")
                parts = rest.split()
                if parts and parts[0].isdigit():
                    factor = 1024 if len(parts) > 1 and parts[1].lower() == "kb" else 1
                    fields[key.strip()] = int(parts[0]) * factor
    except OSError:
        logger.debug("%s is not readable on this platform", path)
    return fields


def memory_usage() -> Optional[Tuple[int, int]]:
    """(total, available) physical memory in bytes, or None where it cannot be read."""
    info = _read_proc_fields("/proc/meminfo")
    if "MemTotal" not in info:
        return None
    return info["MemTotal"], info.get("MemAvailable", info.get("MemFree", 0))


def load_average() -> Optional[float]:
    """One-minute load average, or None on platforms without one."""
    if not hasattr(os, "getloadavg"):
        return None
    try:
        return os.getloadavg()[0]
    except OSError:
        return None


def system_drive() -> Path:
    """Root of the filesystem holding the user's home directory."""
    return Path(Path.home().anchor or "/")


def junk_locations() -> List[Path]:
    """Candidate temp/cache directories for the current platform."""
    home = Path.home()
    candidates = [Path(tempfile.gettempdir())]
    system = platform.system()
    if system == "Windows":
        local = os.environ.get("LOCALAPPDATA")
        if local:
            candidates += [
                Path(local) / "Temp",
                Path(local) / "Microsoft" / "Windows" / "INetCache",
            ]
    elif system == "Darwin":
        candidates += [home / "Library" / "Caches", home / "Library" / "Logs"]
    else:
        candidates += [home / ".cache", home / ".local" / "share" / "Trash", Path("/var/tmp")]
    return candidates


# ---------------------------------------------------------------------------
# Tools
# ---------------------------------------------------------------------------
def get_disk_usage(path: str = "/") -> str:
    """Total / used / free space of the filesystem holding *path*."""
    usage = shutil.disk_usage(Path(path).expanduser())
    percent = usage.used * 100 / usage.total if usage.total else 0.0
    return (
        f"💽 Disk usage for {path}\n"
        f"Total: {format_size(usage.total)}\n"
        f"Used: {format_size(usage.used)} ({percent:.1f}%)\n"
        f"Free: {format_size(usage.free)}"
    )


def get_system_info() -> str:
    """Operating system, CPU, memory and disk overview of this machine."""
    lines = [
        "💻 System information",
        f"Operating system: {platform.system()} {platform.release()}",
        f"Architecture: {platform.machine() or 'unknown'}",
        f"CPU cores: {os.cpu_count() or 'unknown'}",
    ]
    load = load_average()
    if load is not None:
        lines.append(f"Load average (1 min): {load:.2f}")
    lines.append(f"Python: {platform.python_version()} ({platform.python_implementation()})")

    memory = memory_usage()
    if memory is not None:
        total, available = memory
        used = total - available
        lines.append(
            f"Memory: {format_size(used)} used of {format_size(total)} "
            f"({used * 100 / total:.1f}%)"
        )

    drive = system_drive()
    usage = shutil.disk_usage(drive)
    free_percent = usage.free * 100 / usage.total if usage.total else 0.0
    lines.append(f"Disk {drive}: {format_size(usage.free)} free ({free_percent:.1f}%)")
    return "\n".join(lines)


def check_system_health(path: Optional[str] = None) -> str:
    """Check memory, disk space and load against fixed thresholds and suggest what to do."""
    target = Path(path).expanduser() if path else system_drive()
    lines = ["🏥 System health check"]
    issues = 0

    memory = memory_usage()
    if memory is not None:
        total, available = memory
        percent = (total - available) * 100 / total
        if percent > MEMORY_WARNING_PERCENT:
            lines.append(
                f"⚠️ Memory usage is high: {percent:.1f}% (>{MEMORY_WARNING_PERCENT:g}%)"
            )
            issues += 1
        else:
            lines.append(f"✅ Memory usage is normal: {percent:.1f}%")

    usage = shutil.disk_usage(target)
    disk_percent = usage.used * 100 / usage.total if usage.total else 0.0
    if disk_percent > DISK_CRITICAL_PERCENT:
        lines.append(
            f"🔴 Disk {target} is almost full: {disk_percent:.1f}% used "
            f"(>{DISK_CRITICAL_PERCENT:g}%)"
        )
        issues += 1
    elif disk_percent > DISK_WARNING_PERCENT:
        lines.append(
            f"⚠️ Disk {target} is running low: {disk_percent:.1f}% used "
            f"(>{DISK_WARNING_PERCENT:g}%)"
        )
        issues += 1
    else:
        lines.append(f"✅ Disk {target} has enough space: {disk_percent:.1f}% used")

    load = load_average()
    cpus = os.cpu_count() or 1
    if load is not None:
        if load > cpus * LOAD_WARNING_RATIO:
            lines.append(f"⚠️ System load is high: {load:.2f} on {cpus} core(s)")
            issues += 1
        else:
            lines.append(f"✅ System load is normal: {load:.2f}")

    lines.append("")
    if issues == 0:
        lines.append("📊 Assessment: the system is healthy ✅")
        lines.append("Suggestion: clean temporary files regularly and keep an eye on disk usage.")
    elif issues == 1:
        lines.append("📊 Assessment: 1 issue found ⚠️")
        lines.append("Suggestion: look into the warning above.")
    else:
        lines.append(f"📊 Assessment: {issues} issues found 🔴")
        lines.append("Suggestion: free disk space and memory first.")
    return "\n".join(lines)


def get_process_info() -> str:
    """PID, uptime, threads and interpreter of the running ClearAI process."""
    uptime = int(time.time() - _PROCESS_STARTED)
    hours, remainder = divmod(uptime, 3600)
    minutes, seconds = divmod(remainder, 60)
    started = datetime.fromtimestamp(_PROCESS_STARTED).strftime("%Y-%m-%d %H:%M:%S")
    lines = [
        "🔄 Process information",
        f"PID: {os.getpid()}",
        f"Uptime: {hours:02d}:{minutes:02d}:{seconds:02d}",
        f"Started: {started}",
        f"Threads: {threading.active_count()}",
        f"Interpreter: {sys.executable or 'unknown'}",
    ]
    rss = _read_proc_fields("/proc/self/status").get("VmRSS")
    if rss is not None:
        lines.append(f"Resident memory: {format_size(rss)}")
    return "\n".join(lines)


def analyze_junk_locations() -> str:
    """Report which of the well-known junk directories exist and how large they are."""
    lines = ["🗑️ Common junk locations:"]
    found = False
    for location in junk_locations():
        if location.is_dir():
            found = True
            lines.append(f"  - {location}: {format_size(_directory_size(location))}")
    if not found:
        lines.append("  (none found)")
    return "\n".join(lines)


def register_tools(registry: ToolRegistry) -> None:
    """Register the system tools."""
    registry.register(
        ToolDefinition(
            name="get_disk_usage",
            description="Show total, used and free disk space for the filesystem holding a path.",
            parameters=(
                Parameter(
                    name="path",
                    description="Any path on the filesystem to inspect",
                    required=False,
                    default="/",
                ),
            ),
        ),
        get_disk_usage,
    )
    registry.register(
        ToolDefinition(
            name="get_system_info",
            description=(
                "Show operating system, CPU cores, load, memory and free space on the system "
                "drive. Use it for diagnosis before suggesting optimisations."
            ),
        ),
        get_system_info,
    )
    registry.register(
        ToolDefinition(
            name="check_system_health",
            description=(
                "Check memory, disk space and CPU load against warning thresholds and give "
                "suggestions."
            ),
            parameters=(
                Parameter(
                    name="path",
                    description="Filesystem to check, defaults to the system drive",
                    required=False,
                ),
            ),
        ),
        check_system_health,
    )
    registry.register(
        ToolDefinition(
            name="get_process_info",
            description="Show PID, uptime, thread count and memory of the ClearAI process.",
        ),
        get_process_info,
    )
    registry.register(
        ToolDefinition(
            name="analyze_junk_locations",
            description="List well-known temp and cache directories with their sizes.",
        ),
        analyze_junk_locations,
    )
