"""Tracks generated temporary files and deletes them after the document is written."""

import logging
from pathlib import Path
from typing import Dict, Iterable, List, Set, Union

logger = logging.getLogger(__name__)

PathLike = Union[str, Path]


class ResourceTracker:
    """
    Set of generated files scheduled for deletion.

    Only files resolving under one of the approved roots are ever deleted,
    however they entered the set.
    """

    def __init__(self, approved_roots: Iterable[PathLike]):
        self.approved_roots: List[Path] = [Path(root).resolve() for root in approved_roots]
        self._tracked: Set[Path] = set()

    def track(self, path: PathLike) -> None:
        if not path:
            return
        self._tracked.add(Path(path).resolve())
        logger.debug(f"Tracking temporary file {path}")

    @property
    def tracked(self) -> List[str]:
        return sorted(str(p) for p in self._tracked)

    def is_approved(self, path: PathLike) -> bool:
        resolved = Path(path).resolve()
        return any(resolved == root or root in resolved.parents for root in self.approved_roots)

    def cleanup(self) -> Dict[str, List[str]]:
        """
        Delete tracked files under the approved roots.

        Returns:
            Report with ``deleted``, ``skipped`` (outside the roots) and ``failed`` paths
        """
        report: Dict[str, List[str]] = {"deleted": [], "skipped": [], "failed": []}
        for path in sorted(self._tracked):
            if not self.is_approved(path):
                logger.warning(f"Not deleting {path}: outside approved temp directories")
                report["skipped"].append(str(path))
                continue
            try:
                path.unlink(missing_ok=True)
                report["deleted"].append(str(path))
            except OSError as e:
                logger.warning(f"Failed to delete temporary file {path}: {e}")
                report["failed"].append(str(path))
        self._tracked.clear()

        logger.info(
            f"Temp cleanup: {len(report['deleted'])} deleted, "
            f"{len(report['skipped'])} skipped, {len(report['failed'])} failed"
        )
        return report

    def sweep(self, pattern: str = "*.png") -> List[str]:
        """Delete every file matching ``pattern`` directly inside the approved roots."""
        removed: List[str] = []
        for root in self.approved_roots:
            if not root.is_dir():
                continue
            for candidate in root.glob(pattern):
                if not candidate.is_file():
                    continue
                try:
                    candidate.unlink()
                    removed.append(str(candidate))
                except OSError as e:
                    logger.warning(f"Failed to sweep {candidate}: {e}")
        if removed:
            logger.info(f"Swept {len(removed)} leftover files from temp directories")
        return removed
