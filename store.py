import copy
import json
import logging
import os
import tempfile
from typing import Dict, Iterable, List, Optional, Sequence

from errors import CatchAllFolderError, FolderNotFoundError, StorageWriteFailure, ValidationError
from import_export import build_snapshot, dump_snapshot, parse_snapshot
from models import (
    CATCH_ALL_FOLDER_ID,
    Application,
    LaunchmatFolder,
    LaunchmatSettings,
    Preferences,
)
from utils import clamp_int, epoch_millis, is_hex_color, now_iso

logger = logging.getLogger(__name__)

APP_NAME = "Launchmat"
ENV_DATA_DIR = "LAUNCHMAT_DATA_DIR"
CONFIG_FILENAME = "launchmat_config.json"
CONFIG_KEY = "data_dir"
STORE_FILENAME = "launchmat_store.json"
PREFERENCES_FILENAME = "launchmat_preferences.json"

FOLDERS_KEY = "launchmat_folders"
SETTINGS_KEY = "launchmat_settings"
MAPPINGS_KEY = "launchmat_app_mappings"
LAST_SCAN_KEY = "launchmat_last_scan"
ALL_KEYS = (FOLDERS_KEY, SETTINGS_KEY, MAPPINGS_KEY, LAST_SCAN_KEY)

DEFAULT_COLORS = [
    "#FF6B6B",
    "#4ECDC4",
    "#45B7D1",
    "#96CEB4",
    "#FECA57",
    "#FF9FF3",
    "#54A0FF",
    "#5F27CD",
]

# (id, name, icon) in display order.
DEFAULT_FOLDERS = [
    ("folder_productivity", "Productivity", "briefcase"),
    ("folder_development", "Development", "code"),
    ("folder_graphics", "Graphics & Design", "paintbrush"),
    ("folder_entertainment", "Entertainment", "play"),
    ("folder_utilities", "Utilities", "wrench"),
    ("folder_games", "Games", "gamepad"),
    ("folder_communication", "Communication", "message-circle"),
    (CATCH_ALL_FOLDER_ID, "Other", "grid"),
]

CATEGORY_FOLDER_IDS = {
    "productivity": "folder_productivity",
    "development": "folder_development",
    "graphics": "folder_graphics",
    "entertainment": "folder_entertainment",
    "utilities": "folder_utilities",
    "games": "folder_games",
    "communication": "folder_communication",
    "finance": "folder_utilities",
    "social": "folder_communication",
    "other": CATCH_ALL_FOLDER_ID,
}

_MISSING = object()
_CORRUPT = object()


# --- JSON files ---

def _read_json_object(path: str) -> Optional[Dict[str, object]]:
    """Parsed JSON object at `path`; None when absent, unreadable or not an object."""
    if not os.path.exists(path):
        return None
    try:
        with open(path, "r", encoding="utf-8") as fh:
            payload = json.load(fh)
    except (OSError, ValueError) as exc:
        logger.warning("Ignoring unreadable %s: %s", path, exc)
        return None
    if not isinstance(payload, dict):
        logger.warning("Ignoring %s: not a JSON object", path)
        return None
    return payload


def _write_json_atomic(path: str, payload: object) -> None:
    directory = os.path.dirname(os.path.abspath(path))
    os.makedirs(directory, exist_ok=True)
    fd, tmp_path = tempfile.mkstemp(prefix=".launchmat-", suffix=".json", dir=directory)
    try:
        with os.fdopen(fd, "w", encoding="utf-8") as fh:
            json.dump(payload, fh, indent=2)
        os.replace(tmp_path, path)
    except BaseException:
        if os.path.exists(tmp_path):
            os.unlink(tmp_path)
        raise


# --- configuration ---

def app_data_dir(app_name: str = APP_NAME) -> str:
    base = os.getenv("XDG_CONFIG_HOME") or os.path.join(os.path.expanduser("~"), ".config")
    return os.path.join(base, app_name)


def _config_path() -> str:
    return os.path.join(app_data_dir(), CONFIG_FILENAME)


def configured_data_dir() -> Optional[str]:
    value = (_read_json_object(_config_path()) or {}).get(CONFIG_KEY)
    if isinstance(value, str) and value.strip():
        return value.strip()
    return None


def set_configured_data_dir(data_dir: str) -> None:
    """Remember `data_dir` for later sessions; blank values are ignored."""
    if not isinstance(data_dir, str) or not data_dir.strip():
        return
    path = _config_path()
    config = _read_json_object(path) or {}
    config[CONFIG_KEY] = data_dir.strip()
    try:
        _write_json_atomic(path, config)
    except OSError as exc:
        logger.error("Could not save config %s: %s", path, exc)
        raise StorageWriteFailure(CONFIG_FILENAME, exc) from exc


def resolve_data_dir() -> str:
    """Env override, then the remembered directory, then the per-user config dir."""
    return os.getenv(ENV_DATA_DIR) or configured_data_dir() or app_data_dir()


def default_store_path() -> str:
    return os.path.join(resolve_data_dir(), STORE_FILENAME)


def default_preferences_path() -> str:
    return os.path.join(resolve_data_dir(), PREFERENCES_FILENAME)


def load_preferences(path: str) -> Preferences:
    prefs = Preferences()
    payload = _read_json_object(path)
    if payload is None:
        return prefs
    items_per_page = clamp_int(payload.get("items_per_page"), 1, 200)
    if items_per_page is not None:
        prefs.items_per_page = items_per_page
    columns = clamp_int(payload.get("columns"), 1, 12)
    if columns is not None:
        prefs.columns = columns
    for key in ("auto_organize", "show_app_version"):
        value = payload.get(key)
        if isinstance(value, bool):
            setattr(prefs, key, value)
    color = payload.get("default_folder_color")
    if is_hex_color(color):
        prefs.default_folder_color = color
    roots = payload.get("scan_roots")
    if isinstance(roots, list):
        cleaned = [os.path.expanduser(item.strip()) for item in roots if isinstance(item, str) and item.strip()]
        if cleaned:
            prefs.scan_roots = cleaned
    return prefs


def save_preferences(path: str, prefs: Preferences) -> None:
    try:
        _write_json_atomic(path, prefs.to_dict())
    except OSError as exc:
        logger.error("Could not save preferences %s: %s", path, exc)
        raise StorageWriteFailure(PREFERENCES_FILENAME, exc) from exc


# --- key-value backends ---

class MemoryBackend:
    def __init__(self, initial: Optional[Dict[str, str]] = None) -> None:
        self.items: Dict[str, str] = dict(initial or {})

    def get_item(self, key: str) -> Optional[str]:
        return self.items.get(key)

    def set_item(self, key: str, value: str) -> None:
        self.set_items({key: value})

    def set_items(self, items: Dict[str, str]) -> None:
        self.items.update(items)

    def remove_item(self, key: str) -> None:
        self.remove_items([key])

    def remove_items(self, keys: Iterable[str]) -> None:
        for key in keys:
            self.items.pop(key, None)


class JsonFileBackend:
    """All keys in one JSON document, replaced atomically on every write."""

    def __init__(self, path: str) -> None:
        self.path = path

    def _read_document(self) -> Dict[str, str]:
        if not os.path.exists(self.path):
            return {}
        with open(self.path, "r", encoding="utf-8") as fh:
            payload = json.load(fh)
        if not isinstance(payload, dict):
            raise ValueError(f"{self.path} does not contain a JSON object")
        return {key: value for key, value in payload.items() if isinstance(value, str)}

    def _write_document(self, document: Dict[str, str]) -> None:
        _write_json_atomic(self.path, document)

    def _document_for_update(self) -> Dict[str, str]:
        try:
            return self._read_document()
        except ValueError as exc:
            logger.warning("Replacing corrupt store %s: %s", self.path, exc)
            return {}

    def get_item(self, key: str) -> Optional[str]:
        return self._read_document().get(key)

    def set_item(self, key: str, value: str) -> None:
        self.set_items({key: value})

    def set_items(self, items: Dict[str, str]) -> None:
        document = self._document_for_update()
        document.update(items)
        self._write_document(document)

    def remove_item(self, key: str) -> None:
        self.remove_items([key])

    def remove_items(self, keys: Iterable[str]) -> None:
        document = self._document_for_update()
        for key in keys:
            document.pop(key, None)
        self._write_document(document)


def default_folders() -> List[LaunchmatFolder]:
    created = now_iso()
    return [
        LaunchmatFolder(
            id=folder_id,
            name=name,
            color=DEFAULT_COLORS[index],
            icon=icon,
            position=index,
            created_at=created,
        )
        for index, (folder_id, name, icon) in enumerate(DEFAULT_FOLDERS)
    ]


def folder_id_for_category(category: Optional[str], folder_ids: Iterable[str]) -> str:
    target = CATEGORY_FOLDER_IDS.get((category or "other").lower(), CATCH_ALL_FOLDER_ID)
    return target if target in set(folder_ids) else CATCH_ALL_FOLDER_ID


def _folders_json(folders: Sequence[LaunchmatFolder]) -> str:
    return json.dumps([folder.to_dict() for folder in folders])


class LaunchmatStore:
    """Folders, app-to-folder mappings and settings over a key-value backend.

    Reads never raise: a missing or corrupt record degrades to its default.
    Writes raise StorageWriteFailure after logging.
    """

    def __init__(self, backend) -> None:
        self.backend = backend

    # --- raw access ---

    def _load_json(self, key: str) -> object:
        try:
            raw = self.backend.get_item(key)
        except (OSError, ValueError) as exc:
            logger.warning("Could not read %s: %s", key, exc)
            return _CORRUPT
        if raw is None:
            return _MISSING
        try:
            return json.loads(raw)
        except ValueError as exc:
            logger.warning("Corrupt record %s: %s", key, exc)
            return _CORRUPT

    def _write(self, items: Dict[str, str]) -> None:
        try:
            self.backend.set_items(items)
        except (OSError, TypeError, ValueError) as exc:
            key = ", ".join(sorted(items))
            logger.error("Error saving %s: %s", key, exc)
            raise StorageWriteFailure(key, exc) from exc

    # --- folders ---

    def load_folders(self) -> List[LaunchmatFolder]:
        payload = self._load_json(FOLDERS_KEY)
        if payload is _MISSING:
            folders = default_folders()
            try:
                self.save_folders(folders)
            except StorageWriteFailure:
                logger.warning("Default folders could not be persisted; using them in memory")
            return folders
        if not isinstance(payload, list):
            if payload is not _CORRUPT:
                logger.warning("Record %s is not a list; using default folders", FOLDERS_KEY)
            return default_folders()
        folders: List[LaunchmatFolder] = []
        seen = set()
        for item in payload:
            folder = LaunchmatFolder.from_dict(item)
            if folder is None or folder.id in seen:
                logger.warning("Dropping invalid folder entry from %s", FOLDERS_KEY)
                continue
            seen.add(folder.id)
            folders.append(folder)
        folders.sort(key=lambda folder: folder.position)
        return folders

    def save_folders(self, folders: Sequence[LaunchmatFolder]) -> None:
        self._write({FOLDERS_KEY: _folders_json(folders)})

    def create_folder(self, name: str, color: str, icon: str) -> LaunchmatFolder:
        name = (name or "").strip()
        if not name:
            raise ValidationError("Folder name must not be empty.")
        if not is_hex_color(color):
            raise ValidationError(f"Invalid folder color: {color!r}")
        folders = self.load_folders()
        taken = {folder.id for folder in folders}
        stamp = epoch_millis()
        while f"folder_{stamp}" in taken:
            stamp += 1
        folder = LaunchmatFolder(
            id=f"folder_{stamp}",
            name=name,
            color=color,
            icon=(icon or "").strip() or "folder",
            position=len(folders),
            created_at=now_iso(),
        )
        folders.append(folder)
        self.save_folders(folders)
        return folder

    def update_folder(
        self,
        folder_id: str,
        name: Optional[str] = None,
        color: Optional[str] = None,
        icon: Optional[str] = None,
    ) -> Optional[LaunchmatFolder]:
        if name is not None and not name.strip():
            raise ValidationError("Folder name must not be empty.")
        if color is not None and not is_hex_color(color):
            raise ValidationError(f"Invalid folder color: {color!r}")
        folders = self.load_folders()
        folder = next((item for item in folders if item.id == folder_id), None)
        if folder is None:
            return None
        if name is not None:
            folder.name = name.strip()
        if color is not None:
            folder.color = color
        if icon is not None and icon.strip():
            folder.icon = icon.strip()
        folder.updated_at = now_iso()
        self.save_folders(folders)
        return folder

    def delete_folder(self, folder_id: str) -> None:
        if folder_id == CATCH_ALL_FOLDER_ID:
            raise CatchAllFolderError("The catch-all folder cannot be deleted.")
        folders = self.load_folders()
        doomed = next((folder for folder in folders if folder.id == folder_id), None)
        if doomed is None:
            return
        mappings = self.load_application_mappings()
        catch_all = next((folder for folder in folders if folder.id == CATCH_ALL_FOLDER_ID), None)
        for app_id in doomed.application_ids:
            if catch_all is not None:
                catch_all.add_application(app_id)
                mappings[app_id] = CATCH_ALL_FOLDER_ID
            else:
                # Unmapped apps get re-categorized on the next activation.
                mappings.pop(app_id, None)
        remaining = [folder for folder in folders if folder.id != folder_id]
        for position, folder in enumerate(remaining):
            folder.position = position
        self._write({
            FOLDERS_KEY: _folders_json(remaining),
            MAPPINGS_KEY: json.dumps(mappings),
        })

    def reorder_folders(self, ordered_ids: Sequence[str]) -> List[LaunchmatFolder]:
        folders = self.load_folders()
        known = [folder.id for folder in folders]
        if len(ordered_ids) != len(set(ordered_ids)) or set(ordered_ids) != set(known):
            raise ValidationError("Reorder requires every folder id exactly once.")
        index = {folder_id: position for position, folder_id in enumerate(ordered_ids)}
        for folder in folders:
            folder.position = index[folder.id]
        folders.sort(key=lambda folder: folder.position)
        self.save_folders(folders)
        return folders

    # --- mappings ---

    def load_application_mappings(self) -> Dict[str, str]:
        payload = self._load_json(MAPPINGS_KEY)
        if not isinstance(payload, dict):
            if payload is not _MISSING and payload is not _CORRUPT:
                logger.warning("Record %s is not an object; ignoring it", MAPPINGS_KEY)
            return {}
        return {key: value for key, value in payload.items() if isinstance(key, str) and isinstance(value, str)}

    def save_application_mappings(self, mappings: Dict[str, str]) -> None:
        self._write({MAPPINGS_KEY: json.dumps(mappings)})

    def move_app_to_folder(self, app_id: str, from_folder_id: Optional[str], to_folder_id: str) -> None:
        folders = self.load_folders()
        target = next((folder for folder in folders if folder.id == to_folder_id), None)
        if target is None:
            raise FolderNotFoundError(to_folder_id)
        mappings = self.load_application_mappings()
        for folder in folders:
            if folder.id == to_folder_id:
                continue
            removed = folder.remove_application(app_id)
            if removed and folder.id != from_folder_id:
                logger.debug("Removed %s from unexpected folder %s", app_id, folder.id)
        target.add_application(app_id)
        mappings[app_id] = to_folder_id
        self._write({
            FOLDERS_KEY: _folders_json(folders),
            MAPPINGS_KEY: json.dumps(mappings),
        })

    def remove_app_from_folder(self, app_id: str) -> Optional[str]:
        current = self.load_application_mappings().get(app_id)
        if not current:
            return None
        self.move_app_to_folder(app_id, current, CATCH_ALL_FOLDER_ID)
        return current

    def auto_categorize_new_apps(
        self, applications: Sequence[Application], existing_folders: Sequence[LaunchmatFolder]
    ) -> List[LaunchmatFolder]:
        folders = copy.deepcopy(list(existing_folders))
        mappings = self.load_application_mappings()
        pending = [app for app in applications if app.id not in mappings]
        if not pending:
            return folders
        by_id = {folder.id: folder for folder in folders}
        holder = {app_id: folder.id for folder in folders for app_id in folder.application_ids}
        for app in pending:
            if app.id in holder:
                mappings[app.id] = holder[app.id]
                continue
            target_id = folder_id_for_category(app.category, by_id)
            target = by_id.get(target_id)
            if target is None:
                logger.warning("No folder available for %s; leaving it uncategorized", app.name)
                continue
            target.add_application(app.id)
            mappings[app.id] = target_id
            holder[app.id] = target_id
        self._write({
            FOLDERS_KEY: _folders_json(folders),
            MAPPINGS_KEY: json.dumps(mappings),
        })
        return folders

    # --- settings ---

    def load_settings(self) -> LaunchmatSettings:
        payload = self._load_json(SETTINGS_KEY)
        if not isinstance(payload, dict):
            return LaunchmatSettings(last_scan_time=now_iso())
        return LaunchmatSettings.from_dict(payload)

    def save_settings(self, settings: LaunchmatSettings) -> None:
        self._write({SETTINGS_KEY: json.dumps(settings.to_dict())})

    def get_last_scan_time(self) -> Optional[str]:
        try:
            return self.backend.get_item(LAST_SCAN_KEY) or None
        except (OSError, ValueError) as exc:
            logger.warning("Could not read %s: %s", LAST_SCAN_KEY, exc)
            return None

    def set_last_scan_time(self, value: str) -> None:
        self._write({LAST_SCAN_KEY: value})

    def record_scan(self, folders: Sequence[LaunchmatFolder], scanned_at: Optional[str] = None) -> str:
        scanned_at = scanned_at or now_iso()
        settings = self.load_settings()
        settings.folders = list(folders)
        settings.application_mappings = self.load_application_mappings()
        settings.last_scan_time = scanned_at
        self._write({
            SETTINGS_KEY: json.dumps(settings.to_dict()),
            LAST_SCAN_KEY: scanned_at,
        })
        return scanned_at

    # --- import / export ---

    def export_settings(self) -> str:
        snapshot = build_snapshot(
            self.load_folders(),
            self.load_settings(),
            self.load_application_mappings(),
        )
        return dump_snapshot(snapshot)

    def import_settings(self, data: str) -> None:
        snapshot = parse_snapshot(data)
        items: Dict[str, str] = {}
        if snapshot.folders is not None:
            items[FOLDERS_KEY] = _folders_json(snapshot.folders)
        if snapshot.settings is not None:
            items[SETTINGS_KEY] = json.dumps(snapshot.settings.to_dict())
        if snapshot.mappings is not None:
            items[MAPPINGS_KEY] = json.dumps(snapshot.mappings)
        self._write(items)

    def clear_all_data(self) -> None:
        try:
            self.backend.remove_items(ALL_KEYS)
        except (OSError, ValueError) as exc:
            logger.error("Error clearing data: %s", exc)
            raise StorageWriteFailure(", ".join(ALL_KEYS), exc) from exc
