"""
Path helpers shared by the cache, the index and the warming scheduler.

All components key their maps by the same normalized form: forward slashes,
a single leading slash, no trailing slash, and "/" for the root.
"""

import re

ROOT = "/"

# Config/doc files that are worth keeping around longer
IMPORTANT_EXTENSIONS = frozenset({".json", ".md", ".txt", ".xml", ".yml", ".yaml"})
IMPORTANT_FILENAMES = frozenset(
    {"package.json", "composer.json", "README.md", "index.php", "index.html"}
)

_SLASHES = re.compile(r"/+")


def normalize_path(path: str) -> str:
    """Ensure path has leading slash, uses forward slashes, no trailing slash."""
    path = path.replace("\\", "/")
    path = _SLASHES.sub("/", path)
    if not path.startswith("/"):
        path = "/" + path
    if path != ROOT and path.endswith("/"):
        path = path.rstrip("/")
    return path


def normalize_prefix(prefix: str) -> str:
    """Like normalize_path, but keeps a trailing slash if the caller gave one."""
    trailing = prefix.replace("\\", "/").endswith("/")
    path = normalize_path(prefix)
    if trailing and path != ROOT:
        path += "/"
    return path


def parent_path(path: str) -> str:
    """Return the parent directory of a normalized path ("/" for top-level paths)."""
    path = normalize_path(path)
    if path == ROOT:
        return ROOT
    parent = path.rsplit("/", 1)[0]
    return parent or ROOT


def base_name(path: str) -> str:
    path = normalize_path(path)
    if path == ROOT:
        return ""
    return path.rsplit("/", 1)[-1]


def join_path(parent: str, name: str) -> str:
    parent = normalize_path(parent)
    if parent == ROOT:
        return "/" + name
    return f"{parent}/{name}"


def depth(path: str) -> int:
    """Number of segments below the root ("/" is 0, "/a" is 1, "/a/b" is 2)."""
    path = normalize_path(path)
    if path == ROOT:
        return 0
    return path.count("/")


def is_descendant(path: str, ancestor: str) -> bool:
    """True if path lies strictly below ancestor."""
    ancestor = normalize_path(ancestor)
    if ancestor == ROOT:
        return normalize_path(path) != ROOT
    return normalize_path(path).startswith(ancestor + "/")


def extension(path: str) -> str:
    name = base_name(path)
    if "." not in name:
        return ""
    return "." + name.rsplit(".", 1)[-1].lower()


def is_important_path(path: str) -> bool:
    """
    Paths that deserve an extended cache TTL.

    Root-level paths, well-known project files and config/doc extensions.
    """
    path = normalize_path(path)
    if depth(path) <= 1:
        return True
    if base_name(path) in IMPORTANT_FILENAMES:
        return True
    return extension(path) in IMPORTANT_EXTENSIONS
