from dataclasses import dataclass, field
import enum
import os
from typing import Any, Dict, List, Optional

from utils import is_hex_color, unique_in_order

SCHEMA_VERSION = "1.0.0"
CATCH_ALL_FOLDER_ID = "folder_other"
CATCH_ALL_CATEGORY = "Other"


@dataclass
class Application:
    id: str
    name: str
    bundle_identifier: str
    path: str
    last_modified: str
    version: Optional[str] = None
    icon: Optional[str] = None
    category: Optional[str] = None
    size: Optional[int] = None

    def dedupe_key(self) -> str:
        return self.bundle_identifier or self.name

    def to_dict(self) -> Dict[str, Any]:
        payload: Dict[str, Any] = {
            "id": self.id,
            "name": self.name,
            "bundleIdentifier": self.bundle_identifier,
            "path": self.path,
            "lastModified": self.last_modified,
        }
        for key, value in (
            ("version", self.version),
            ("icon", self.icon),
            ("category", self.category),
            ("size", self.size),
        ):
            if value is not None:
                payload[key] = value
        return payload


@dataclass
class LaunchmatFolder:
    id: str
    name: str
    color: str
    icon: str
    position: int
    created_at: str
    application_ids: List[str] = field(default_factory=list)
    updated_at: Optional[str] = None

    def add_application(self, app_id: str) -> bool:
        if app_id in self.application_ids:
            return False
        self.application_ids.append(app_id)
        return True

    def remove_application(self, app_id: str) -> bool:
        if app_id not in self.application_ids:
            return False
        self.application_ids = [value for value in self.application_ids if value != app_id]
        return True

    def to_dict(self) -> Dict[str, Any]:
        payload: Dict[str, Any] = {
            "id": self.id,
            "name": self.name,
            "color": self.color,
            "icon": self.icon,
            "applicationIds": list(self.application_ids),
            "position": self.position,
            "createdAt": self.created_at,
        }
        if self.updated_at:
            payload["updatedAt"] = self.updated_at
        return payload

    @classmethod
    def from_dict(cls, raw: object) -> Optional["LaunchmatFolder"]:
        if not isinstance(raw, dict):
            return None
        folder_id = raw.get("id")
        name = raw.get("name")
        if not isinstance(folder_id, str) or not folder_id.strip():
            return None
        if not isinstance(name, str):
            return None
        position = raw.get("position")
        if isinstance(position, bool) or not isinstance(position, int):
            return None
        app_ids = raw.get("applicationIds", [])
        if not isinstance(app_ids, list):
            return None
        color = raw.get("color")
        icon = raw.get("icon")
        updated_at = raw.get("updatedAt")
        return cls(
            id=folder_id,
            name=name,
            color=color if is_hex_color(color) else "#007AFF",
            icon=icon if isinstance(icon, str) and icon else "folder",
            position=position,
            created_at=str(raw.get("createdAt") or ""),
            application_ids=unique_in_order(app_ids),
            updated_at=updated_at if isinstance(updated_at, str) and updated_at else None,
        )


@dataclass
class LaunchmatSettings:
    folders: List[LaunchmatFolder] = field(default_factory=list)
    application_mappings: Dict[str, str] = field(default_factory=dict)
    last_scan_time: str = ""
    version: str = SCHEMA_VERSION

    def to_dict(self) -> Dict[str, Any]:
        return {
            "folders": [folder.to_dict() for folder in self.folders],
            "applicationMappings": dict(self.application_mappings),
            "lastScanTime": self.last_scan_time,
            "version": self.version,
        }

    @classmethod
    def from_dict(cls, raw: Dict[str, Any]) -> "LaunchmatSettings":
        settings = cls()
        folders = raw.get("folders", [])
        if isinstance(folders, list):
            parsed = [LaunchmatFolder.from_dict(item) for item in folders]
            settings.folders = [folder for folder in parsed if folder is not None]
        mappings = raw.get("applicationMappings", {})
        if isinstance(mappings, dict):
            settings.application_mappings = {
                key: value for key, value in mappings.items()
                if isinstance(key, str) and isinstance(value, str)
            }
        settings.last_scan_time = str(raw.get("lastScanTime") or "")
        settings.version = str(raw.get("version") or SCHEMA_VERSION)
        return settings


@dataclass
class ScanResult:
    applications: List[Application]
    new_applications: List[Application]
    removed_application_ids: List[str]


def default_scan_roots() -> List[str]:
    return ["/Applications", os.path.join(os.path.expanduser("~"), "Applications")]


@dataclass
class Preferences:
    items_per_page: int = 28
    columns: int = 7
    auto_organize: bool = True
    show_app_version: bool = False
    default_folder_color: str = "#007AFF"
    scan_roots: List[str] = field(default_factory=default_scan_roots)

    def to_dict(self) -> Dict[str, Any]:
        return {
            "items_per_page": self.items_per_page,
            "columns": self.columns,
            "auto_organize": self.auto_organize,
            "show_app_version": self.show_app_version,
            "default_folder_color": self.default_folder_color,
            "scan_roots": list(self.scan_roots),
        }


class ItemKind(enum.Enum):
    FOLDER = "folder"
    APPLICATION = "application"


@dataclass(frozen=True)
class GridItem:
    """One cell of the launcher grid; switch on `kind`, never on field presence."""

    kind: ItemKind
    folder: Optional[LaunchmatFolder] = None
    application: Optional[Application] = None

    @classmethod
    def of_folder(cls, folder: LaunchmatFolder) -> "GridItem":
        return cls(kind=ItemKind.FOLDER, folder=folder)

    @classmethod
    def of_application(cls, application: Application) -> "GridItem":
        return cls(kind=ItemKind.APPLICATION, application=application)

    @property
    def id(self) -> str:
        if self.kind is ItemKind.FOLDER:
            return self.folder.id  # type: ignore[union-attr]
        return self.application.id  # type: ignore[union-attr]

    @property
    def title(self) -> str:
        if self.kind is ItemKind.FOLDER:
            return self.folder.name  # type: ignore[union-attr]
        return self.application.name  # type: ignore[union-attr]
