"""Optional audit artifacts written after a run.

Neither the report nor the asset backup is required for a successful import;
failures here are logged and never raised.
"""

import json
from datetime import datetime
from pathlib import Path
from typing import Optional
from urllib.parse import urlparse

import requests  # type: ignore[import-untyped]

from catalog_import.config import REQUEST_TIMEOUT
from catalog_import.logging_config import get_logger
from catalog_import.models import RunSummary
from catalog_import.sources import create_session

__all__ = [
    "write_run_report",
    "backup_assets",
]

logger = get_logger("artifacts")

IMAGE_EXTENSIONS = {"jpg", "jpeg", "png", "webp", "gif", "avif"}


def write_run_report(summary: RunSummary, report_dir: Path) -> Optional[Path]:
    """Write the run summary and every imported handle with its image URLs.

    Returns:
        Path of the report, or None if it could not be written
    """
    report_dir = Path(report_dir)
    timestamp = datetime.now().strftime("%Y%m%d_%H%M%S")
    report_path = report_dir / f"import_report_{timestamp}.json"

    report = {
        "generated_at": datetime.now().isoformat(),
        "summary": summary.to_dict(),
        "products": [
            {"index": r.index, "name": r.name, "handle": r.handle, "images": r.image_urls}
            for r in summary.results
            if r.imported
        ],
        "failed": [
            {"index": r.index, "name": r.name, "errors": r.errors}
            for r in summary.results
            if r.errors
        ],
    }

    try:
        report_dir.mkdir(parents=True, exist_ok=True)
        with open(report_path, "w", encoding="utf-8") as f:
            json.dump(report, f, indent=2, ensure_ascii=False)
    except OSError as e:
        logger.warning(f"Could not write run report to {report_path}: {e}")
        return None

    logger.info(f"Run report saved to: {report_path}")
    return report_path


def _extension(url: str) -> str:
    suffix = Path(urlparse(url).path).suffix.lower().lstrip(".")
    return suffix if suffix in IMAGE_EXTENSIONS else "jpg"


def backup_assets(
    summary: RunSummary,
    report_dir: Path,
    session: Optional[requests.Session] = None,
) -> int:
    """Download imported product images to ``report_dir/assets/<handle>/``.

    Only absolute http(s) URLs are fetched; existing files are kept.

    Returns:
        Number of files saved
    """
    if session is None:
        session = create_session()

    assets_dir = Path(report_dir) / "assets"
    saved = 0

    for result in summary.results:
        if not result.imported or not result.handle:
            continue
        for position, url in enumerate(result.image_urls, start=1):
            if urlparse(url).scheme not in ("http", "https"):
                continue
            target = assets_dir / result.handle / f"{position}.{_extension(url)}"
            if target.exists():
                continue
            try:
                resp = session.get(url, timeout=REQUEST_TIMEOUT)
                resp.raise_for_status()
                target.parent.mkdir(parents=True, exist_ok=True)
                target.write_bytes(resp.content)
                saved += 1
            except (requests.exceptions.RequestException, OSError) as e:
                logger.warning(f"  Backup of {url} failed: {e}")

    logger.info(f"Backed up {saved} asset(s) to {assets_dir}")
    return saved
