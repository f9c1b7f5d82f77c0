"""URL handle (slug) generation and per-run uniqueness registry."""

import re
import threading
from collections import defaultdict
from typing import Dict, Iterable, List, Optional, Set, Tuple

from catalog_import.config import HANDLE_MAX_LENGTH

__all__ = [
    "slugify",
    "HandleRegistry",
    "allocate_handle",
]

NON_ALNUM_RUN_RE = re.compile(r"[^a-z0-9]+")
EMPTY_HANDLE = "product"


def slugify(text: Optional[str], max_length: int = HANDLE_MAX_LENGTH) -> str:
    """Lower-case, hyphen-separated, URL-safe form of ``text``."""
    if not text:
        return ""
    slug = NON_ALNUM_RUN_RE.sub("-", text.lower()).strip("-")
    return slug[:max_length].strip("-")


class HandleRegistry:
    """Set of taken handles for one pipeline run.

    Hydrated from the store before any product is written, then mutated by
    every allocation. Check-and-claim happens under a lock so concurrent
    workers never receive the same handle.
    """

    def __init__(self, handles: Optional[Iterable[str]] = None) -> None:
        self._taken: Set[str] = set(handles or ())
        self._claimed: Set[str] = set()
        self._prior: Dict[str, List[str]] = defaultdict(list)
        self._lock = threading.Lock()

    def hydrate(self, rows: Iterable[Tuple[str, Optional[str]]]) -> int:
        """Register ``(handle, source_key)`` pairs that already exist in the store.

        Rows should be in creation order; a source key that owns several
        handles hands them back oldest first on later runs.

        Returns:
            Number of handles added
        """
        added = 0
        with self._lock:
            for handle, source_key in rows:
                if handle not in self._taken:
                    added += 1
                self._taken.add(handle)
                if source_key:
                    self._prior[source_key].append(handle)
        return added

    def __contains__(self, handle: str) -> bool:
        with self._lock:
            return handle in self._taken

    def __len__(self) -> int:
        with self._lock:
            return len(self._taken)

    def _claim(self, handle: str) -> str:
        self._taken.add(handle)
        self._claimed.add(handle)
        return handle

    def allocate(
        self,
        name: str,
        disambiguator: Optional[str] = None,
        source_key: Optional[str] = None,
    ) -> str:
        """Claim and return a handle for ``name``.

        Resolution order:
            1. a handle this source record owned in a previous run
            2. slugify(name)
            3. slugify(name + " " + disambiguator), disambiguator longer than 2 chars
            4. "{slug}-{n}" for n = 2, 3, ...
        """
        base = slugify(name) or EMPTY_HANDLE

        with self._lock:
            if source_key:
                for handle in self._prior.get(source_key, ()):
                    if handle not in self._claimed:
                        return self._claim(handle)

            if base not in self._taken:
                return self._claim(base)

            if disambiguator and len(disambiguator.strip()) > 2:
                composed = slugify(f"{name} {disambiguator}")
                if composed and composed not in self._taken:
                    return self._claim(composed)

            counter = 2
            while f"{base}-{counter}" in self._taken:
                counter += 1
            return self._claim(f"{base}-{counter}")


def allocate_handle(
    name: str,
    disambiguator: Optional[str],
    registry: HandleRegistry,
    source_key: Optional[str] = None,
) -> str:
    """Allocate a unique handle from ``registry`` (which records the claim).

    With ``source_key``, a handle the same source record owned in a previous
    run is handed back first.
    """
    return registry.allocate(name, disambiguator, source_key)
