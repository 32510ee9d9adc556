"""
Compiled-pattern cache and string transformations for field rules.
"""

from __future__ import annotations

import re
import threading
from typing import Dict, Pattern, Tuple

from ..errors import PatternError

SIMPLE_TRANSFORMATIONS = frozenset({"trim", "lowercase", "uppercase", "remove_whitespace"})

_WHITESPACE_RE = re.compile(r"\s+")


class PatternCache:
    """Per-extractor cache of compiled regular expressions.

    Compilation happens under a lock so concurrent extractions sharing one
    extractor never compile the same pattern twice. Invalid patterns raise
    :class:`PatternError` and are never cached.
    """

    def __init__(self) -> None:
        self._patterns: Dict[Tuple[str, int], Pattern[str]] = {}
        self._lock = threading.Lock()

    def get(self, pattern: str, flags: int = 0) -> Pattern[str]:
        key = (pattern, flags)
        with self._lock:
            compiled = self._patterns.get(key)
            if compiled is None:
                try:
                    compiled = re.compile(pattern, flags)
                except re.error as e:
                    raise PatternError(f"Invalid regex pattern '{pattern}': {e}") from e
                self._patterns[key] = compiled
            return compiled

    def clear(self) -> None:
        with self._lock:
            self._patterns.clear()

    def __len__(self) -> int:
        return len(self._patterns)

    def __contains__(self, pattern: object) -> bool:
        return any(key[0] == pattern for key in self._patterns)


def parse_transformation(spec: str) -> Tuple[str, Tuple[str, ...]]:
    """Split a transformation spec into its name and arguments.

    ``regex:<pattern>`` keeps everything after the prefix as the pattern;
    ``replace:<search>:<replacement>`` splits on the first colon, so the
    replacement may itself contain colons.
    """
    if spec in SIMPLE_TRANSFORMATIONS:
        return spec, ()
    if spec.startswith("regex:"):
        pattern = spec[len("regex:") :]
        if not pattern:
            raise PatternError(f"Empty regex transformation: {spec}")
        return "regex", (pattern,)
    if spec.startswith("replace:"):
        parts = spec[len("replace:") :].split(":", 1)
        if len(parts) < 2 or not parts[0]:
            raise PatternError(f"Invalid replace transformation: {spec}")
        return "replace", (parts[0], parts[1])
    raise PatternError(f"Unknown transformation: {spec}")


def apply_transformation(value: str, spec: str, cache: PatternCache) -> str:
    name, args = parse_transformation(spec)

    if name == "trim":
        return value.strip()
    if name == "lowercase":
        return value.lower()
    if name == "uppercase":
        return value.upper()
    if name == "remove_whitespace":
        return _WHITESPACE_RE.sub("", value)
    if name == "replace":
        return value.replace(args[0], args[1])

    regex = cache.get(args[0])
    found = regex.search(value)
    if found is None:
        raise PatternError(f"Pattern '{args[0]}' did not match '{value}'")
    if regex.groups:
        return found.group(1) or ""
    return found.group(0)
