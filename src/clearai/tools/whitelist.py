"""
Protected-path whitelist and the tools that manage it.

Rules come from two places:

- **user rules**, kept in a plain text file (one rule per line, ``#`` starts a comment) that the
  ``add_to_whitelist`` / ``remove_from_whitelist`` tools rewrite;
- **system rules**, the built-in defaults below plus an optional read-only rules file.

A rule is compared against a normalised path (forward slashes, lower case, no trailing slash).
Rules may use ``%VAR%`` environment variables and ``~``.  A rule containing ``*``, ``?`` or ``[``
is a shell-style pattern, so ``C:\\Windows\\*`` protects everything below that directory.  Any
other rule matches one path exactly.  A rule without a directory part (``pagefile.sys``) is
matched against the file name alone.
"""

import fnmatch
import logging
import os
import re
import tempfile
import threading
from functools import partial
from pathlib import Path
from typing import (
    Iterable,
    List,
    Optional,
)

from clearai.core.schema import (
    Parameter,
    ToolDefinition,
)
from clearai.tools import ToolRegistry

logger = logging.getLogger(__name__)

DEFAULT_SYSTEM_RULES = (
    # Windows system directories
    "C:\\Windows\\*",
    "C:\\Program Files\\*",
    "C:\\Program Files (x86)\\*",
    "C:\\ProgramData\\*",
    "%SystemRoot%\\*",
    "%ProgramFiles%\\*",
    "%ProgramFiles(x86)%\\*",
    "%ProgramData%\\*",
    # Windows system files
    "pagefile.sys",
    "hiberfil.sys",
    "swapfile.sys",
    # Windows user configuration
    "%USERPROFILE%\\AppData\\Local\\Microsoft\\*",
    "%USERPROFILE%\\AppData\\Roaming\\Microsoft\\*",
    "%APPDATA%\\*",
    "%LOCALAPPDATA%\\*",
    # Unix system directories
    "/bin/*",
    "/boot/*",
    "/dev/*",
    "/etc/*",
    "/lib/*",
    "/lib64/*",
    "/proc/*",
    "/sbin/*",
    "/sys/*",
    "/usr/*",
    "/System/*",
    # Unix user secrets
    "~/.ssh/*",
    "~/.gnupg/*",
)

USER_FILE_HEADER = """\
# ClearAI user whitelist
# One path per line. Paths listed here are never treated as junk.
# End a directory with * to protect everything below it, e.g. ~/Projects/*
# %USERPROFILE%, %TEMP%, %APPDATA% and other environment variables are expanded.
"""

_ENV_VAR = re.compile(r"%([A-Za-z_][A-Za-z0-9_()]*)%")
_WILDCARDS = frozenset("*?[")


def _env_value(name: str) -> Optional[str]:
    key = name.upper()
    if key in ("USERPROFILE", "HOME"):
        return str(Path.home())
    if key in ("TEMP", "TMP"):
        return tempfile.gettempdir()
    if key == "USERNAME":
        return os.environ.get("USERNAME") or os.environ.get("USER")
    if key == "WINDIR":
        return os.environ.get("WINDIR") or os.environ.get("SystemRoot")
    return os.environ.get(name)


def expand_rule(rule: str) -> Optional[str]:
    """
    Replace ``%VAR%`` references and a leading ``~`` in *rule*.

    Returns None when a referenced variable is not set, so that the rule can be skipped.
    """
    missing: List[str] = []

    def _replace(match: "re.Match[str]") -> str:
        value = _env_value(match.group(1))
        if value is None:
            missing.append(match.group(1))
            return match.group(0)
        return value

    expanded = _ENV_VAR.sub(_replace, rule.strip())
    if missing:
        logger.debug("Skipping whitelist rule %r: %s not set", rule, ", ".join(missing))
        return None
    if expanded.startswith("~"):
        expanded = os.path.expanduser(expanded)
    return expanded


def normalize_path(path: str) -> str:
    """Unify separators, lower-case and drop trailing separators (the root stays ``/``)."""
    normalized = path.strip().replace("\\", "/").lower()
    while len(normalized) > 1 and normalized.endswith("/"):
        normalized = normalized[:-1]
    return normalized


def rule_matches(rule: str, path: str) -> bool:
    """Match a normalised *rule* against a normalised *path*."""
    subject = path if "/" in rule else path.rsplit("/", 1)[-1]
    if _WILDCARDS.intersection(rule):
        return fnmatch.fnmatchcase(subject, rule)
    return subject == rule


def read_rules(path: Path) -> List[str]:
    """Non-empty, non-comment lines of a rules file."""
    rules: List[str] = []
    with path.open(encoding="utf-8") as handle:
        for line in handle:
            line = line.strip()
            if line and not line.startswith("#"):
                rules.append(line)
    return rules


# ---------------------------------------------------------------------------
# Whitelist
# ---------------------------------------------------------------------------
class Whitelist:
    """
    User and system protection rules, shared by every session.

    Parameters
    ----------
    path:
        User rules file.  It is read by :meth:`load` when it exists and rewritten on every
        add/remove.  With ``None`` the user rules live in memory only.
    system_path:
        Optional extra system rules file, read by :meth:`load` and never written.
    use_defaults:
        Include :data:`DEFAULT_SYSTEM_RULES`.
    """

    def __init__(
        self,
        path: Optional[Path | str] = None,
        system_path: Optional[Path | str] = None,
        use_defaults: bool = True,
    ) -> None:
        self.path = Path(path) if path else None
        self.system_path = Path(system_path) if system_path else None
        self.use_defaults = use_defaults
        self._lock = threading.Lock()
        self._user_rules: List[str] = []
        self._system_rules: List[str] = self._compile(DEFAULT_SYSTEM_RULES if use_defaults else ())

    @staticmethod
    def _compile(rules: Iterable[str]) -> List[str]:
        compiled: List[str] = []
        for rule in rules:
            expanded = expand_rule(rule)
            if expanded is None:
                continue
            normalized = normalize_path(expanded)
            if normalized and normalized not in compiled:
                compiled.append(normalized)
        return compiled

    # ------------------------------------------------------------------ #
    # Persistence
    # ------------------------------------------------------------------ #
    def load(self) -> "Whitelist":
        """(Re)read both rule files.  Missing files are not an error."""
        system = list(DEFAULT_SYSTEM_RULES) if self.use_defaults else []
        if self.system_path is not None and self.system_path.is_file():
            system += read_rules(self.system_path)
        user: List[str] = []
        if self.path is not None and self.path.is_file():
            user = read_rules(self.path)

        with self._lock:
            self._system_rules = self._compile(system)
            self._user_rules = self._compile(user)
        logger.info(
            "Whitelist loaded: %d user rule(s), %d system rule(s)",
            len(self._user_rules),
            len(self._system_rules),
        )
        return self

    def _save(self) -> None:
        if self.path is None:
            return
        self.path.parent.mkdir(parents=True, exist_ok=True)
        body = "".join(f"{rule}\n" for rule in self._user_rules)
        self.path.write_text(USER_FILE_HEADER + "\n" + body, encoding="utf-8")
        logger.debug("Saved %d user whitelist rule(s) to %s", len(self._user_rules), self.path)

    # ------------------------------------------------------------------ #
    # Queries and updates
    # ------------------------------------------------------------------ #
    @property
    def user_rules(self) -> List[str]:
        with self._lock:
            return list(self._user_rules)

    @property
    def system_rules(self) -> List[str]:
        with self._lock:
            return list(self._system_rules)

    def __len__(self) -> int:
        with self._lock:
            return len(self._user_rules) + len(self._system_rules)

    def matching_rule(self, path: str) -> Optional[str]:
        """First rule protecting *path*, or None."""
        if not path or not path.strip():
            return None
        target = normalize_path(os.path.expanduser(path.strip()))
        with self._lock:
            rules = self._user_rules + self._system_rules
        for rule in rules:
            if rule_matches(rule, target):
                return rule
        return None

    def is_whitelisted(self, path: str) -> bool:
        """True if any rule protects *path*."""
        return self.matching_rule(path) is not None

    def add(self, path: str) -> bool:
        """Add a user rule; returns False if it was already present."""
        rules = self._compile([path])
        if not rules:
            raise ValueError(f"Cannot whitelist an empty or unresolvable path: {path!r}")
        with self._lock:
            if rules[0] in self._user_rules:
                return False
            self._user_rules.append(rules[0])
            self._save()
        logger.info("Whitelisted %s", rules[0])
        return True

    def remove(self, path: str) -> bool:
        """Remove a user rule; returns False if no such user rule exists."""
        rules = self._compile([path])
        with self._lock:
            if not rules or rules[0] not in self._user_rules:
                return False
            self._user_rules.remove(rules[0])
            self._save()
        logger.info("Removed %s from the whitelist", rules[0])
        return True


# ---------------------------------------------------------------------------
# Tools
# ---------------------------------------------------------------------------
def check_whitelist(path: str, whitelist: Whitelist) -> str:
    """Report whether *path* is protected and by which rule."""
    rule = whitelist.matching_rule(path)
    if rule is None:
        return f"✅ {path} is not whitelisted; it may be cleaned after confirmation."
    return f"🛡️ {path} is protected by whitelist rule '{rule}' and must not be deleted."


def add_to_whitelist(path: str, whitelist: Whitelist) -> str:
    """Protect *path*."""
    if not path.strip():
        raise ValueError("path must not be empty")
    if whitelist.add(path):
        return f"✅ Added to the whitelist: {path}"
    return f"ℹ️ Already whitelisted: {path}"


def remove_from_whitelist(path: str, whitelist: Whitelist) -> str:
    """Drop a user rule for *path*."""
    if not path.strip():
        raise ValueError("path must not be empty")
    if whitelist.remove(path):
        return f"✅ Removed from the whitelist: {path}"
    if whitelist.is_whitelisted(path):
        return f"⚠️ {path} is protected by a system rule, which cannot be removed."
    return f"ℹ️ {path} was not in the user whitelist."


def show_whitelist(whitelist: Whitelist, limit: int = 10) -> str:
    """List the user rules and a sample of the system rules."""
    user = whitelist.user_rules
    system = whitelist.system_rules
    lines = [
        "📋 Whitelist",
        f"User rules file: {whitelist.path or '(in memory only)'}",
        f"Rules: {len(user)} user, {len(system)} system",
    ]
    if user:
        lines.append("User rules:")
        lines.extend(f"  • {rule}" for rule in user)
    if system:
        lines.append("System rules:")
        lines.extend(f"  • {rule}" for rule in system[:limit])
        if len(system) > limit:
            lines.append(f"  ... and {len(system) - limit} more")
    return "\n".join(lines)


def register_tools(registry: ToolRegistry, whitelist: Whitelist) -> None:
    """Register the whitelist tools bound to *whitelist*."""
    path_param = Parameter(name="path", description="File or directory path")
    registry.register(
        ToolDefinition(
            name="check_whitelist",
            description=(
                "Check whether a path is protected by the whitelist and must not be deleted."
            ),
            parameters=(path_param,),
        ),
        partial(check_whitelist, whitelist=whitelist),
    )
    registry.register(
        ToolDefinition(
            name="add_to_whitelist",
            description=(
                "Protect a path from cleanup. End a directory with * to protect everything "
                "below it."
            ),
            parameters=(path_param,),
        ),
        partial(add_to_whitelist, whitelist=whitelist),
    )
    registry.register(
        ToolDefinition(
            name="remove_from_whitelist",
            description="Remove a path the user previously protected from the whitelist.",
            parameters=(path_param,),
        ),
        partial(remove_from_whitelist, whitelist=whitelist),
    )
    registry.register(
        ToolDefinition(
            name="show_whitelist",
            description="Show the whitelist rules currently protecting files from cleanup.",
        ),
        partial(show_whitelist, whitelist=whitelist),
    )
