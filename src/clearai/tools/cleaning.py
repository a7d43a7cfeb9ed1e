"""
Cleanup analysis: sort the files of a directory into traffic-light groups.

- 🟢 **safe to delete**: temporary, cache, log, backup and partial-download files;
- 🟡 **review**: documents, archives, installers, media and anything over 100 MB;
- 🔴 **keep**: whitelisted files and everything else.

The report only recommends; deleting is left to the user after confirmation.
"""

import logging
from collections import Counter
from functools import partial
from pathlib import Path
from typing import (
    Dict,
    List,
    Optional,
    Tuple,
)

from clearai.core.schema import (
    Parameter,
    ToolDefinition,
)
from clearai.tools import ToolRegistry
from clearai.tools.filesystem import (
    format_size,
    is_junk,
    require_directory,
    walk_files,
)
from clearai.tools.whitelist import Whitelist

logger = logging.getLogger(__name__)

SAFE = "safe"
REVIEW = "review"
KEEP = "keep"

LARGE_FILE_BYTES = 100 * 1024 * 1024
MAX_LISTED = 5

CLEANABLE_SUFFIXES = (".crdownload", ".download", ".partial")
DOCUMENT_EXTENSIONS = frozenset({".pdf", ".doc", ".docx", ".xls", ".xlsx", ".ppt", ".pptx", ".txt"})
ARCHIVE_EXTENSIONS = frozenset({".zip", ".rar", ".7z", ".tar", ".gz", ".exe", ".msi", ".dmg"})
MEDIA_EXTENSIONS = frozenset({".mp4", ".avi", ".mkv", ".mov", ".mp3", ".wav", ".jpg", ".png"})
REVIEW_EXTENSIONS = DOCUMENT_EXTENSIONS | ARCHIVE_EXTENSIONS | MEDIA_EXTENSIONS

_PURPOSES = (
    ({".py", ".java", ".class", ".jar", ".js", ".ts", ".go", ".rs", ".c", ".cpp"}, "source code"),
    ({".pdf", ".doc", ".docx", ".txt", ".md", ".xls", ".xlsx"}, "documents"),
    ({".tmp", ".log", ".cache", ".bak", ".old"}, "temporary files and logs"),
    ({".mp4", ".avi", ".mkv", ".jpg", ".jpeg", ".png", ".mp3"}, "media"),
)

_HEADINGS = {
    SAFE: "🟢 Safe to delete",
    REVIEW: "🟡 Review before deleting",
    KEEP: "🔴 Keep",
}

_ADVICE = {
    SAFE: "Temporary or regenerable files; can be deleted after the user confirms.",
    REVIEW: "Personal or large files; ask the user about each one.",
    KEEP: "Protected or unknown files; leave them alone.",
}


def classify_file(path: Path, size: int, root: Path, whitelist: Optional[Whitelist] = None) -> str:
    """Return :data:`SAFE`, :data:`REVIEW` or :data:`KEEP` for one file."""
    if whitelist is not None and whitelist.is_whitelisted(str(path.absolute())):
        return KEEP
    name = path.name.lower()
    if is_junk(path, root) or name.startswith("~") or name.startswith(".~"):
        return SAFE
    if name.endswith(CLEANABLE_SUFFIXES):
        return SAFE
    if size > LARGE_FILE_BYTES or path.suffix.lower() in REVIEW_EXTENSIONS:
        return REVIEW
    return KEEP


def _guess_purpose(extensions: Counter) -> str:
    best, best_count = "general files", 0
    for suffixes, purpose in _PURPOSES:
        count = sum(extensions[s] for s in suffixes)
        if count > best_count:
            best, best_count = purpose, count
    return best


def analyze_directory_for_cleaning(path: str, whitelist: Optional[Whitelist] = None) -> str:
    """Traffic-light cleanup report for every file below *path*."""
    root = require_directory(path)

    groups: Dict[str, List[Tuple[Path, int]]] = {SAFE: [], REVIEW: [], KEEP: []}
    extensions: Counter = Counter()
    total_size = 0
    for file_path, st in walk_files(root, include_subdirs=True, max_depth=0):
        groups[classify_file(file_path, st.st_size, root, whitelist)].append(
            (file_path, st.st_size)
        )
        extensions[file_path.suffix.lower()] += 1
        total_size += st.st_size

    total_files = sum(len(files) for files in groups.values())
    logger.debug(
        "Cleanup analysis of %s: %s",
        root,
        {group: len(files) for group, files in groups.items()},
    )

    lines = [
        f"🤖 Cleanup analysis of {root}",
        f"Files: {total_files}, total size: {format_size(total_size)}",
        f"Looks like: {_guess_purpose(extensions)}",
    ]
    for group in (SAFE, REVIEW, KEEP):
        files = sorted(groups[group], key=lambda item: item[1], reverse=True)
        size = sum(file_size for _, file_size in files)
        lines.append("")
        lines.append(f"{_HEADINGS[group]}: {len(files)} file(s), {format_size(size)}")
        lines.append(_ADVICE[group])
        for index, (file_path, file_size) in enumerate(files[:MAX_LISTED], start=1):
            lines.append(f"  [{index}] {file_path} ({format_size(file_size)})")
        if len(files) > MAX_LISTED:
            lines.append(f"  ... and {len(files) - MAX_LISTED} more")

    if groups[SAFE]:
        lines.append("")
        reclaimable = sum(file_size for _, file_size in groups[SAFE])
        lines.append(f"Space reclaimable from the safe group: {format_size(reclaimable)}")
    return "\n".join(lines)


def register_tools(registry: ToolRegistry, whitelist: Optional[Whitelist] = None) -> None:
    """Register the cleanup analysis tool."""
    registry.register(
        ToolDefinition(
            name="analyze_directory_for_cleaning",
            description=(
                "Sort every file below a directory into safe to delete (green), review "
                "(yellow) and keep (red). Whitelisted files are always kept."
            ),
            parameters=(Parameter(name="path", description="Directory to analyse"),),
        ),
        partial(analyze_directory_for_cleaning, whitelist=whitelist),
    )
