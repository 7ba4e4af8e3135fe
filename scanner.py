import logging
import os
import plistlib
import subprocess
from xml.parsers.expat import ExpatError
from typing import Any, Dict, Iterable, List, Optional, Sequence, Tuple, Type

from compare import diff_applications
from errors import ExternalActionError, InfoFailure, LaunchFailure, RevealFailure
from models import CATCH_ALL_CATEGORY, Application, ScanResult, default_scan_roots
from utils import app_id_for_path, name_sort_key, now_iso, timestamp_iso

logger = logging.getLogger(__name__)

BUNDLE_SUFFIX = ".app"
DESCRIPTOR_PATH = ("Contents", "Info.plist")
RESOURCES_PATH = ("Contents", "Resources")
ICON_SUFFIX = ".icns"

# First matching category wins; keywords are matched against the lower-cased bundle id.
CATEGORY_KEYWORDS: List[Tuple[str, Tuple[str, ...]]] = [
    ("Productivity", ("office", "document", "text", "note", "task", "calendar")),
    ("Development", ("xcode", "code", "terminal", "git", "developer")),
    ("Graphics", ("photo", "image", "design", "sketch", "figma", "adobe")),
    ("Entertainment", ("music", "video", "media", "netflix", "spotify")),
    ("Communication", ("mail", "message", "slack", "discord", "zoom")),
    ("Utilities", ("utility", "system", "clean", "monitor", "activity")),
    ("Games", ("game",)),
    ("Finance", ("bank", "finance", "money", "budget")),
    ("Social", ("social", "facebook", "twitter", "instagram")),
]

# Coarse fallback on LSApplicationCategoryType.
DECLARED_CATEGORY_HINTS: List[Tuple[str, str]] = [
    ("productivity", "Productivity"),
    ("graphics", "Graphics"),
    ("utility", "Utilities"),
    ("game", "Games"),
]


def categorize(descriptor: Dict[str, Any]) -> str:
    bundle_id = str(descriptor.get("CFBundleIdentifier") or "").lower()
    declared = str(descriptor.get("LSApplicationCategoryType") or "").lower()
    for category, keywords in CATEGORY_KEYWORDS:
        if any(keyword in bundle_id for keyword in keywords):
            return category
    for hint, category in DECLARED_CATEGORY_HINTS:
        if hint in declared:
            return category
    return CATCH_ALL_CATEGORY


class AppScanner:
    """Enumerates .app bundles under a set of root directories."""

    OPEN_COMMAND = "open"
    FINDER_BUNDLE_ID = "com.apple.finder"

    def __init__(self) -> None:
        self.apps: List[Application] = []

    def scan(self, roots: Optional[Sequence[str]] = None) -> List[Application]:
        if roots is None:
            roots = default_scan_roots()
        found: List[Application] = []
        for root in roots:
            for bundle_path in self._bundle_paths(root):
                found.append(self.read_bundle(bundle_path))
        unique: Dict[str, Application] = {}
        for app in found:
            key = app.dedupe_key()
            if key in unique:
                logger.debug("Skipping duplicate bundle %s (%s)", app.path, key)
                continue
            unique[key] = app
        self.apps = sorted(unique.values(), key=lambda app: name_sort_key(app.name))
        return self.apps

    @staticmethod
    def _bundle_paths(root: str) -> List[str]:
        try:
            with os.scandir(root) as entries:
                names = sorted(entry.name for entry in entries if entry.name.endswith(BUNDLE_SUFFIX))
        except OSError as exc:
            logger.debug("Cannot list %s: %s", root, exc)
            return []
        return [os.path.join(root, name) for name in names]

    def read_bundle(self, bundle_path: str) -> Application:
        stem = os.path.basename(bundle_path)[: -len(BUNDLE_SUFFIX)] or os.path.basename(bundle_path)
        descriptor = self._read_descriptor(bundle_path)
        if descriptor is None:
            return self._fallback_application(bundle_path, stem)
        bundle_id = descriptor.get("CFBundleIdentifier")
        name = _first_text(descriptor, "CFBundleDisplayName", "CFBundleName") or stem
        try:
            last_modified = timestamp_iso(os.stat(bundle_path).st_mtime)
        except OSError:
            last_modified = now_iso()
        return Application(
            id=app_id_for_path(bundle_path),
            name=name,
            bundle_identifier=bundle_id if isinstance(bundle_id, str) and bundle_id else f"unknown.{stem}",
            path=bundle_path,
            version=_first_text(descriptor, "CFBundleShortVersionString", "CFBundleVersion"),
            icon=self._resolve_icon(bundle_path, descriptor),
            category=categorize(descriptor),
            last_modified=last_modified,
            size=self.bundle_size(bundle_path),
        )

    @staticmethod
    def _read_descriptor(bundle_path: str) -> Optional[Dict[str, Any]]:
        path = os.path.join(bundle_path, *DESCRIPTOR_PATH)
        try:
            with open(path, "rb") as fh:
                payload = plistlib.load(fh)
        except FileNotFoundError:
            return None
        except (OSError, ValueError, ExpatError, plistlib.InvalidFileException) as exc:
            logger.debug("Unreadable descriptor %s: %s", path, exc)
            return None
        if not isinstance(payload, dict):
            return None
        return payload

    @staticmethod
    def _fallback_application(bundle_path: str, stem: str) -> Application:
        return Application(
            id=app_id_for_path(bundle_path),
            name=stem,
            bundle_identifier=f"unknown.{stem}",
            path=bundle_path,
            last_modified=now_iso(),
            category=CATCH_ALL_CATEGORY,
        )

    @staticmethod
    def _resolve_icon(bundle_path: str, descriptor: Dict[str, Any]) -> Optional[str]:
        icon_file = descriptor.get("CFBundleIconFile")
        if not isinstance(icon_file, str) or not icon_file.strip():
            return None
        icon_file = icon_file.strip()
        if not icon_file.endswith(ICON_SUFFIX):
            icon_file = f"{icon_file}{ICON_SUFFIX}"
        candidate = os.path.join(bundle_path, *RESOURCES_PATH, icon_file)
        return candidate if os.path.isfile(candidate) else None

    @staticmethod
    def bundle_size(bundle_path: str) -> int:
        total = 0
        stack: List[str] = [bundle_path]
        while stack:
            current = stack.pop()
            try:
                with os.scandir(current) as entries:
                    for entry in entries:
                        try:
                            if entry.is_symlink():
                                continue
                            if entry.is_dir(follow_symlinks=False):
                                stack.append(entry.path)
                            else:
                                total += entry.stat(follow_symlinks=False).st_size
                        except OSError:
                            continue
            except OSError:
                if current == bundle_path:
                    return 0
                continue
        return total

    def launch(self, app: Application) -> None:
        self._open(app, ["-a", app.path], LaunchFailure)

    def reveal_in_file_browser(self, app: Application) -> None:
        self._open(app, ["-R", app.path], RevealFailure)

    def show_info(self, app: Application) -> None:
        self._open(app, ["-b", self.FINDER_BUNDLE_ID, app.path], InfoFailure)

    def _open(self, app: Application, args: List[str], failure: Type[ExternalActionError]) -> None:
        argv = [self.OPEN_COMMAND, *args]
        try:
            subprocess.run(argv, check=True, capture_output=True)
        except (OSError, subprocess.CalledProcessError) as exc:
            logger.error("%s failed for %s: %s", " ".join(argv[:2]), app.name, exc)
            raise failure(app.name, exc) from exc

    @staticmethod
    def diff(current: Iterable[Application], previous: Iterable[Application]) -> ScanResult:
        return diff_applications(current, previous)


def _first_text(descriptor: Dict[str, Any], *keys: str) -> Optional[str]:
    for key in keys:
        value = descriptor.get(key)
        if isinstance(value, str) and value.strip():
            return value
    return None
