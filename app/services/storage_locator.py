"""Storage locator for resolving recorded video paths to readable files.

Video rows store paths relative to a storage root ("temp-videos/<uuid>.mp4",
"videos/<id>/index.m3u8"), but deployments mount that root at different
absolute locations and older rows carry absolute paths from the machine
that wrote them. The locator probes an ordered list of root strategies and
returns the first candidate that exists.

Resolution Order (per recorded path):
    1. The path itself, if it is absolute
    2. Each root strategy applied to the path, in configured order
    3. For absolute legacy paths, each root applied to the tail starting at
       "temp-videos/" or "videos/"

"Not found" is a normal outcome (None), never an exception: files are
legitimately missing before processing, after deletion or after a move.

Usage:
    from app.services.storage_locator import StorageLocator

    locator = StorageLocator.from_config()
    path = locator.locate(video.original_path)
    if path is None:
        ...  # locator.candidates(video.original_path) lists what was probed
"""

from collections.abc import Callable, Iterable, Sequence
from pathlib import Path

from app.config import get_storage_roots

RootStrategy = Callable[[str], Path]

# Directory markers that start the storage-relative part of an absolute path
LEGACY_PATH_MARKERS = ("temp-videos/", "videos/")


def root_prefix(root: str | Path) -> RootStrategy:
    """Build a strategy that joins a relative path onto ``root``."""
    base = Path(root)

    def candidate(relative_path: str) -> Path:
        return base / relative_path.lstrip("/")

    candidate.__name__ = f"root_prefix({base})"
    return candidate


def normalize_legacy_path(path: str) -> str | None:
    """Strip the machine-specific prefix from an absolute legacy path.

    Example:
        >>> normalize_legacy_path("/var/www/lms/storage/app/private/temp-videos/a.mp4")
        'temp-videos/a.mp4'
        >>> normalize_legacy_path("temp-videos/a.mp4") is None
        True
    """
    if not Path(path).is_absolute():
        return None

    for marker in LEGACY_PATH_MARKERS:
        index = path.find("/" + marker)
        if index >= 0:
            return path[index + 1 :]
    return None


class StorageLocator:
    """Pure existence probe across ordered storage root strategies.

    Attributes:
        strategies: Root strategies in probe order.

    Example:
        >>> locator = StorageLocator.from_roots(["/srv/a", "/srv/b"])
        >>> [str(p) for p in locator.candidates("videos/1/x.mp4")]
        ['/srv/a/videos/1/x.mp4', '/srv/b/videos/1/x.mp4']
    """

    def __init__(self, strategies: Sequence[RootStrategy]):
        self.strategies = list(strategies)

    @classmethod
    def from_roots(cls, roots: Iterable[str | Path]) -> "StorageLocator":
        return cls([root_prefix(root) for root in roots])

    @classmethod
    def from_config(cls) -> "StorageLocator":
        """Build a locator from STORAGE_ROOTS (see app.config.get_storage_roots)."""
        return cls.from_roots(get_storage_roots())

    def _candidates_for(self, path: str) -> list[Path]:
        candidates: list[Path] = []
        if Path(path).is_absolute():
            candidates.append(Path(path))
            relative = normalize_legacy_path(path)
            if relative is None:
                return candidates
        else:
            relative = path

        candidates.extend(strategy(relative) for strategy in self.strategies)
        return candidates

    def candidates(self, *paths: str | None) -> list[Path]:
        """List every path that would be probed, in order, without duplicates.

        Empty or None entries are skipped so callers can pass optional
        columns directly.
        """
        seen: set[Path] = set()
        ordered: list[Path] = []
        for path in paths:
            if not path:
                continue
            for candidate in self._candidates_for(path):
                if candidate not in seen:
                    seen.add(candidate)
                    ordered.append(candidate)
        return ordered

    def locate(self, *paths: str | None) -> Path | None:
        """Return the first candidate that is an existing regular file, else None."""
        for candidate in self.candidates(*paths):
            if candidate.is_file():
                return candidate
        return None
