"""Request path to store key resolution for s3proxy.

Covers joining the configured root with the request path, expanding
``{placeholder}`` variables in the root template, and the hide-pattern
check that makes keys act as if they do not exist.
"""

import fnmatch
import os
import posixpath
import re
from collections.abc import Mapping, Sequence
from dataclasses import dataclass

SEPARATOR = "/"

_PLACEHOLDER_RE = re.compile(r"\{([^{}]+)\}")


@dataclass(frozen=True)
class ResolvedKey:
    """A store key derived from a request path.

    Attributes:
        key: The store key, e.g. "/docs/index.html".
    """

    key: str

    @property
    def is_directory(self) -> bool:
        """True if the key ends with a separator (a directory view)."""
        return self.key.endswith(SEPARATOR)


def _clean(path: str) -> str:
    """Collapse duplicate separators and resolve ``.``/``..`` segments."""
    if not path:
        return ""
    cleaned = posixpath.normpath(path)
    # POSIX keeps exactly two leading slashes; keys never want that.
    if cleaned.startswith("//"):
        cleaned = SEPARATOR + cleaned.lstrip(SEPARATOR)
    return cleaned


def join_path(root: str, uri_path: str) -> str:
    """Join the root and the request path into a store key.

    Both parts are treated as path segments, so ``join_path("/cat", "/dog")``
    is ``"/cat/dog"``. The cleaned join drops any trailing separator; it is
    added back when the request path ends with one (or, for an empty path,
    when the root does) since that implies a directory view. A join that is
    exactly ``"/"`` is returned as is.

    Args:
        root: The expanded root path, may be empty.
        uri_path: The request URL path.

    Returns:
        The joined store key.
    """
    trailing_source = uri_path if uri_path else root
    is_dir = trailing_source.endswith(SEPARATOR)

    # Resolve ".." against the request path alone so it cannot climb out
    # of the root.
    if uri_path:
        uri_path = _clean(SEPARATOR + uri_path)

    parts = [p for p in (root, uri_path) if p]
    if not parts:
        return ""
    new_path = _clean(SEPARATOR.join(parts))

    if is_dir and new_path != SEPARATOR:
        return new_path + SEPARATOR
    return new_path


def resolve_key(root: str, uri_path: str) -> ResolvedKey:
    """Build the ``ResolvedKey`` for a request path."""
    return ResolvedKey(join_path(root, uri_path))


def expand_root(template: str, variables: Mapping[str, str]) -> str:
    """Expand ``{name}`` placeholders in a root template.

    ``{env.NAME}`` reads the process environment; other names are looked up
    in ``variables``. Unknown placeholders expand to an empty string.
    """

    def _replace(match: re.Match) -> str:
        name = match.group(1)
        if name.startswith("env."):
            return os.environ.get(name[len("env."):], "")
        return variables.get(name, "")

    return _PLACEHOLDER_RE.sub(_replace, template)


def _glob_match(pattern: str, key: str) -> bool:
    # Wildcards never cross a separator.
    if pattern.count(SEPARATOR) != key.count(SEPARATOR):
        return False
    return fnmatch.fnmatchcase(key, pattern)


def is_hidden(key: str, patterns: Sequence[str]) -> bool:
    """Return True if ``key`` is hidden by any of ``patterns``.

    A pattern without a separator hides any file or folder with exactly that
    name; hiding "bar" hides "/bar" and "/foo/bar/baz" but not "/barstool".
    A pattern with a separator is a whole-segment prefix match, so "/foo"
    hides "/foo" and "/foo/bar" but not "/foobar". Every pattern is also
    tried as a glob against the full key.
    """
    components: list[str] | None = None

    for pattern in patterns:
        if not pattern:
            continue
        if SEPARATOR not in pattern:
            if components is None:
                components = key.split(SEPARATOR)
            if pattern in components:
                return True
        elif key.startswith(pattern):
            remainder = key[len(pattern):]
            if not remainder or remainder.startswith(SEPARATOR) or pattern.endswith(SEPARATOR):
                return True

        if _glob_match(pattern, key):
            return True

    return False
