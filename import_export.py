import csv
import json
from dataclasses import dataclass
from typing import Any, Dict, List, Optional, Sequence

from openpyxl import Workbook

from errors import ImportFormatError
from models import SCHEMA_VERSION, Application, LaunchmatFolder, LaunchmatSettings
from utils import now_iso


SNAPSHOT_SECTIONS = ("folders", "settings", "mappings")

LAYOUT_HEADERS = [
    "Folder",
    "Position",
    "Application",
    "BundleIdentifier",
    "Version",
    "Path",
]


@dataclass
class Snapshot:
    folders: Optional[List[LaunchmatFolder]] = None
    settings: Optional[LaunchmatSettings] = None
    mappings: Optional[Dict[str, str]] = None


def build_snapshot(
    folders: Sequence[LaunchmatFolder],
    settings: LaunchmatSettings,
    mappings: Dict[str, str],
) -> Dict[str, Any]:
    return {
        "folders": [folder.to_dict() for folder in folders],
        "settings": settings.to_dict(),
        "mappings": dict(mappings),
        "exportedAt": now_iso(),
        "version": SCHEMA_VERSION,
    }


def dump_snapshot(snapshot: Dict[str, Any]) -> str:
    return json.dumps(snapshot, indent=2)


def parse_snapshot(data: str) -> Snapshot:
    """Validate every present section before anything is applied."""
    if not isinstance(data, str) or not data.strip():
        raise ImportFormatError("Import data is empty.")
    try:
        payload = json.loads(data)
    except ValueError as exc:
        raise ImportFormatError(f"Import data is not valid JSON: {exc}") from exc
    if not isinstance(payload, dict):
        raise ImportFormatError("Import data must be a JSON object.")
    present = [key for key in SNAPSHOT_SECTIONS if payload.get(key) is not None]
    if not present:
        raise ImportFormatError("Import data contains no folders, settings or mappings.")
    snapshot = Snapshot()
    if "folders" in present:
        snapshot.folders = _folders_from_json(payload["folders"])
    if "settings" in present:
        raw = payload["settings"]
        if not isinstance(raw, dict):
            raise ImportFormatError("'settings' must be an object.")
        snapshot.settings = LaunchmatSettings.from_dict(raw)
    if "mappings" in present:
        snapshot.mappings = _mappings_from_json(payload["mappings"])
    return snapshot


def _folders_from_json(raw: object) -> List[LaunchmatFolder]:
    if not isinstance(raw, list):
        raise ImportFormatError("'folders' must be a list.")
    folders: List[LaunchmatFolder] = []
    seen = set()
    for index, item in enumerate(raw):
        folder = LaunchmatFolder.from_dict(item)
        if folder is None:
            raise ImportFormatError(f"Folder entry {index} is malformed.")
        if folder.id in seen:
            raise ImportFormatError(f"Duplicate folder id: {folder.id}")
        seen.add(folder.id)
        folders.append(folder)
    return folders


def _mappings_from_json(raw: object) -> Dict[str, str]:
    if not isinstance(raw, dict):
        raise ImportFormatError("'mappings' must be an object.")
    mappings: Dict[str, str] = {}
    for key, value in raw.items():
        if not isinstance(key, str) or not isinstance(value, str):
            raise ImportFormatError(f"Mapping for {key!r} is not a folder id.")
        mappings[key] = value
    return mappings


def layout_rows(folders: Sequence[LaunchmatFolder], applications: Sequence[Application]) -> List[List[str]]:
    by_id = {app.id: app for app in applications}
    rows: List[List[str]] = []
    for folder in sorted(folders, key=lambda item: item.position):
        for app_id in folder.application_ids:
            app = by_id.get(app_id)
            if app is None:
                continue
            rows.append([
                folder.name,
                str(folder.position),
                app.name,
                app.bundle_identifier,
                app.version or "",
                app.path,
            ])
    return rows


def export_layout_csv(file_path: str, folders: Sequence[LaunchmatFolder], applications: Sequence[Application]) -> None:
    with open(file_path, "w", newline="", encoding="utf-8") as csv_file:
        writer = csv.writer(csv_file)
        writer.writerow(LAYOUT_HEADERS)
        writer.writerows(layout_rows(folders, applications))


def export_layout_xlsx(file_path: str, folders: Sequence[LaunchmatFolder], applications: Sequence[Application]) -> None:
    book = Workbook(write_only=True)
    sheet = book.create_sheet("Folders")
    sheet.append(LAYOUT_HEADERS)
    for row in layout_rows(folders, applications):
        sheet.append(row)
    book.save(file_path)
