"""Cross-checks registry records against module directories on disk"""

import logging
from pathlib import Path

from bundleos.core.bundles.models import ConsistencyReport
from bundleos.core.bundles.registry import BundleRegistry

logger = logging.getLogger(__name__)


def check_consistency(registry: BundleRegistry, module_root: Path) -> ConsistencyReport:
    """
    Report module directories without a record and records without a directory

    Hidden entries (staging directories, the module status file) are ignored.
    Nothing is repaired.
    """
    records = registry.list_bundles()
    known = {r.module_name for r in records}

    on_disk = set()
    if module_root.is_dir():
        on_disk = {
            p.name for p in module_root.iterdir()
            if p.is_dir() and not p.name.startswith(".")
        }

    report = ConsistencyReport(
        orphan_directories=sorted(on_disk - known),
        dangling_records=sorted(r.slug for r in records if r.module_name not in on_disk),
    )

    if report.is_consistent:
        logger.info(f"Registry consistent: {len(records)} bundle(s)")
    else:
        logger.warning(
            f"Registry inconsistent: {len(report.orphan_directories)} orphan director(ies), "
            f"{len(report.dangling_records)} dangling record(s)"
        )
    return report
