from typing import Dict, Iterable, List, Set, Tuple

from models import Application, ScanResult


def build_app_id_set(apps: Iterable[Application]) -> Set[str]:
    return {app.id for app in apps}


def diff_applications(current: Iterable[Application], previous: Iterable[Application]) -> ScanResult:
    current_apps = list(current)
    previous_ids: List[str] = []
    seen: Set[str] = set()
    for app in previous:
        if app.id not in seen:
            seen.add(app.id)
            previous_ids.append(app.id)
    current_ids = build_app_id_set(current_apps)
    return ScanResult(
        applications=current_apps,
        new_applications=[app for app in current_apps if app.id not in seen],
        removed_application_ids=[app_id for app_id in previous_ids if app_id not in current_ids],
    )


def split_categorized(
    apps: Iterable[Application], mappings: Dict[str, str]
) -> Tuple[List[Application], List[Application]]:
    """Return (uncategorized, categorized) preserving input order."""
    uncategorized: List[Application] = []
    categorized: List[Application] = []
    for app in apps:
        if mappings.get(app.id):
            categorized.append(app)
        else:
            uncategorized.append(app)
    return uncategorized, categorized
