"""
Path Utils
==========
Helpers for locating the files worth showing the fix tool as context.

Responsibilities:
    - Extract changed file paths from a unified diff
    - Extract relative import paths from JS/TS source
    - Resolve an import path to a file inside the clone
"""
import os
import re
from typing import List, Optional

_FROM_IMPORT_RE = re.compile(r"""from\s+["']([^"']+)["']""")
_REQUIRE_RE = re.compile(r"""require\s*\(\s*["']([^"']+)["']\s*\)""")

_IMPORT_EXTENSIONS = ["", ".ts", ".tsx", ".js", ".jsx", ".mts", ".mjs"]
_INDEX_FILES = ["index.ts", "index.tsx", "index.js", "index.jsx"]


def extract_changed_file_paths(diff: str) -> List[str]:
    """Paths of the `+++ b/` side of a unified diff, in order, deduplicated."""
    paths: List[str] = []
    for line in diff.split("\n"):
        if line.startswith("+++ b/"):
            path = line[6:]
            if path not in paths:
                paths.append(path)
    return paths


def extract_import_paths(source: str) -> List[str]:
    """Relative (./ or ../) import and require targets, deduplicated."""
    paths: List[str] = []
    for regex in (_FROM_IMPORT_RE, _REQUIRE_RE):
        for match in regex.finditer(source):
            path = match.group(1)
            if path.startswith(".") and path not in paths:
                paths.append(path)
    return paths


def resolve_import_path(repo_dir: str, from_dir: str, import_path: str) -> Optional[str]:
    """
    Resolve a relative import to a repo-relative file path, trying common
    extensions, .js → .ts source mapping, and directory index files.
    """
    if not import_path.startswith("."):
        return None

    resolved = os.path.normpath(os.path.join(from_dir, import_path))
    if resolved.startswith(".."):
        return None

    for ext in _IMPORT_EXTENSIONS:
        candidate = resolved + ext
        if os.path.isfile(os.path.join(repo_dir, candidate)):
            return candidate

    # TypeScript sources are often imported with a .js suffix
    if import_path.endswith(".js"):
        stem = resolved[:-3]
        for ext in (".ts", ".tsx"):
            if os.path.isfile(os.path.join(repo_dir, stem + ext)):
                return stem + ext

    for index_file in _INDEX_FILES:
        candidate = os.path.join(resolved, index_file)
        if os.path.isfile(os.path.join(repo_dir, candidate)):
            return candidate

    return None
