"""
Filesystem tools: directory scans, listings, single-file analysis and search.

These are stateless helpers.  A bad path raises, and the registry reports it back to the model
as a failed tool result.  Files protected by the whitelist are never counted as junk.
"""

import fnmatch
import logging
import os
import stat
from collections import Counter
from datetime import datetime
from functools import partial
from pathlib import Path
from typing import (
    Iterator,
    List,
    Optional,
    Tuple,
)

from clearai.core.schema import (
    Parameter,
    ParameterType,
    ToolDefinition,
)
from clearai.tools import ToolRegistry
from clearai.tools.whitelist import Whitelist

logger = logging.getLogger(__name__)

JUNK_EXTENSIONS = frozenset(
    {".tmp", ".temp", ".log", ".bak", ".old", ".cache", ".dmp", ".swp", ".part"}
)
JUNK_DIR_NAMES = frozenset(
    {"__pycache__", ".cache", "cache", "tmp", "temp", "node_modules", ".pytest_cache"}
)

_SORT_KEYS = ("name", "size", "time", "type")


def format_size(size: float) -> str:
    """Human readable byte count."""
    for unit in ("B", "KB", "MB", "GB"):
        if size < 1024:
            return f"{size:.0f} {unit}" if unit == "B" else f"{size:.2f} {unit}"
        size /= 1024
    return f"{size:.2f} TB"


def require_directory(path: str) -> Path:
    directory = Path(path).expanduser()
    if not directory.exists():
        raise FileNotFoundError(f"Directory does not exist: {path}")
    if not directory.is_dir():
        raise NotADirectoryError(f"Not a directory: {path}")
    return directory


def is_junk(path: Path, root: Optional[Path] = None) -> bool:
    """
    Heuristic: temp/log/backup extensions or living under a cache-like directory.

    Only directories below *root* are considered; without a root, only the immediate parent.
    """
    if path.suffix.lower() in JUNK_EXTENSIONS or path.name.endswith("~"):
        return True
    if root is None:
        parents: Tuple[str, ...] = (path.parent.name,)
    else:
        parents = path.relative_to(root).parent.parts
    return any(part.lower() in JUNK_DIR_NAMES for part in parents)


def _log_walk_error(exc: OSError) -> None:
    logger.debug("Skipping unreadable entry: %s", exc)


def walk_files(
    root: Path, include_subdirs: bool, max_depth: int
) -> Iterator[Tuple[Path, os.stat_result]]:
    """Yield (path, stat) for regular files below *root*; unreadable entries are skipped."""
    for dirpath, dirnames, filenames in os.walk(root, onerror=_log_walk_error):
        depth = len(Path(dirpath).relative_to(root).parts)
        if not include_subdirs or (max_depth > 0 and depth + 1 >= max_depth):
            dirnames.clear()
        for filename in filenames:
            file_path = Path(dirpath) / filename
            try:
                st = file_path.stat()
            except OSError:
                continue
            if stat.S_ISREG(st.st_mode):
                yield file_path, st


# ---------------------------------------------------------------------------
# Tools
# ---------------------------------------------------------------------------
def scan_directory(
    path: str,
    include_subdirs: bool = True,
    max_depth: int = 0,
    whitelist: Optional[Whitelist] = None,
) -> str:
    """Summarise file count, size, extension mix and junk candidates under *path*."""
    root = require_directory(path)

    total_files = 0
    total_size = 0
    junk_files = 0
    junk_size = 0
    protected_files = 0
    extensions: Counter = Counter()
    largest: List[Tuple[int, Path]] = []

    for file_path, st in walk_files(root, include_subdirs, max_depth):
        total_files += 1
        total_size += st.st_size
        extensions[file_path.suffix.lower() or "(none)"] += 1
        if whitelist is not None and whitelist.is_whitelisted(str(file_path.absolute())):
            protected_files += 1
        elif is_junk(file_path, root):
            junk_files += 1
            junk_size += st.st_size
        largest.append((st.st_size, file_path))
        if len(largest) > 50:
            largest = sorted(largest, reverse=True)[:5]

    lines = [
        f"📁 Scan of {root}",
        f"Files: {total_files}",
        f"Total size: {format_size(total_size)}",
        f"Junk candidates: {junk_files} ({format_size(junk_size)})",
    ]
    if protected_files:
        lines.append(f"Whitelisted (protected): {protected_files}")
    if extensions:
        top = ", ".join(f"{ext}: {count}" for ext, count in extensions.most_common(8))
        lines.append(f"Top extensions: {top}")
    if largest:
        lines.append("Largest files:")
        for size, file_path in sorted(largest, reverse=True)[:5]:
            lines.append(f"  - {file_path} ({format_size(size)})")
    return "\n".join(lines)


def list_directory(path: str, sort_by: str = "name", include_hidden: bool = False) -> str:
    """List the direct children of *path*."""
    directory = require_directory(path)
    if sort_by not in _SORT_KEYS:
        raise ValueError(f"sort_by must be one of {', '.join(_SORT_KEYS)}")

    entries = [e for e in directory.iterdir() if include_hidden or not e.name.startswith(".")]

    def _size(entry: Path) -> int:
        try:
            return entry.stat().st_size if entry.is_file() else 0
        except OSError:
            return 0

    def _mtime(entry: Path) -> float:
        try:
            return entry.stat().st_mtime
        except OSError:
            return 0.0

    if sort_by == "size":
        entries.sort(key=_size, reverse=True)
    elif sort_by == "time":
        entries.sort(key=_mtime, reverse=True)
    elif sort_by == "type":
        entries.sort(key=lambda e: (not e.is_dir(), e.suffix.lower(), e.name.lower()))
    else:
        entries.sort(key=lambda e: e.name.lower())

    if not entries:
        return f"📂 {directory} is empty"

    lines = [f"📂 {directory} ({len(entries)} entries)"]
    for entry in entries:
        if entry.is_dir():
            lines.append(f"  [DIR]  {entry.name}/")
        else:
            lines.append(f"  [FILE] {entry.name} ({format_size(_size(entry))})")
    return "\n".join(lines)


def analyze_file(path: str, whitelist: Optional[Whitelist] = None) -> str:
    """Size, timestamps, permissions and junk classification of a file or directory."""
    target = Path(path).expanduser()
    if not target.exists():
        raise FileNotFoundError(f"File or directory does not exist: {path}")

    st = target.stat()
    lines = [f"📄 Analysis of {target.resolve()}"]
    if target.is_dir():
        children = list(target.iterdir())
        files = [c for c in children if c.is_file()]
        size = sum(c.stat().st_size for c in files)
        lines.append("Type: directory")
        lines.append(f"Contains: {len(files)} files, {len(children) - len(files)} subdirectories")
        lines.append(f"Direct file size: {format_size(size)}")
    else:
        lines.append("Type: file")
        lines.append(f"Size: {format_size(st.st_size)}")
        lines.append(f"Extension: {target.suffix or '(none)'}")
        lines.append(f"Junk candidate: {'yes' if is_junk(target) else 'no'}")

    if whitelist is not None:
        rule = whitelist.matching_rule(str(target.absolute()))
        lines.append(f"Whitelisted: yes ({rule})" if rule else "Whitelisted: no")

    modified = datetime.fromtimestamp(st.st_mtime).strftime("%Y-%m-%d %H:%M:%S")
    lines.append(f"Last modified: {modified}")
    lines.append(
        "Permissions: "
        + ("r" if os.access(target, os.R_OK) else "-")
        + ("w" if os.access(target, os.W_OK) else "-")
        + ("x" if os.access(target, os.X_OK) else "-")
    )
    return "\n".join(lines)


def search_files(
    directory: str, pattern: str = "*", file_type: Optional[str] = None, max_results: int = 20
) -> str:
    """Find files under *directory* whose name matches a shell-style *pattern*."""
    root = require_directory(directory)
    if max_results <= 0:
        raise ValueError("max_results must be positive")
    suffix = f".{file_type.lstrip('.').lower()}" if file_type else None

    matches: List[Tuple[Path, int]] = []
    for file_path, st in walk_files(root, include_subdirs=True, max_depth=0):
        if not fnmatch.fnmatch(file_path.name, pattern):
            continue
        if suffix and file_path.suffix.lower() != suffix:
            continue
        matches.append((file_path, st.st_size))
        if len(matches) >= max_results:
            break

    if not matches:
        return f"🔎 No files matching '{pattern}' under {root}"
    lines = [f"🔎 {len(matches)} file(s) matching '{pattern}' under {root}:"]
    lines.extend(f"  - {p} ({format_size(size)})" for p, size in matches)
    return "\n".join(lines)


def register_tools(registry: ToolRegistry, whitelist: Optional[Whitelist] = None) -> None:
    """Register the filesystem tools; scans skip files protected by *whitelist*."""
    registry.register(
        ToolDefinition(
            name="scan_directory",
            description=(
                "Scan a directory: file count, total size, extension breakdown, junk file "
                "candidates and largest files. Use it to judge how much can be cleaned."
            ),
            parameters=(
                Parameter(name="path", description="Directory to scan"),
                Parameter(
                    name="include_subdirs",
                    type=ParameterType.BOOL,
                    description="Whether to descend into subdirectories",
                    required=False,
                    default=True,
                ),
                Parameter(
                    name="max_depth",
                    type=ParameterType.INT,
                    description="Maximum depth, 0 for unlimited",
                    required=False,
                    default=0,
                ),
            ),
        ),
        partial(scan_directory, whitelist=whitelist),
    )
    registry.register(
        ToolDefinition(
            name="list_directory",
            description="List the entries of a directory.",
            parameters=(
                Parameter(name="path", description="Directory to list"),
                Parameter(
                    name="sort_by",
                    description="name, size, time or type",
                    required=False,
                    default="name",
                ),
                Parameter(
                    name="include_hidden",
                    type=ParameterType.BOOL,
                    description="Include dot files",
                    required=False,
                    default=False,
                ),
            ),
        ),
        list_directory,
    )
    registry.register(
        ToolDefinition(
            name="analyze_file",
            description=(
                "Show size, timestamps, permissions, junk classification and whitelist "
                "protection of a path."
            ),
            parameters=(Parameter(name="path", description="File or directory to analyse"),),
        ),
        partial(analyze_file, whitelist=whitelist),
    )
    registry.register(
        ToolDefinition(
            name="search_files",
            description="Search a directory tree for files by name pattern and type.",
            parameters=(
                Parameter(name="directory", description="Directory to search"),
                Parameter(
                    name="pattern",
                    description="Shell-style name pattern (*, ?)",
                    required=False,
                    default="*",
                ),
                Parameter(
                    name="file_type",
                    description="Extension filter such as log or tmp",
                    required=False,
                ),
                Parameter(
                    name="max_results",
                    type=ParameterType.INT,
                    description="Maximum number of results",
                    required=False,
                    default=20,
                ),
            ),
        ),
        search_files,
    )
