import locale
import logging
from dataclasses import dataclass, field
from typing import Dict, List, Optional, Sequence, Tuple

from compare import diff_applications, split_categorized
from errors import FolderNotFoundError, StorageWriteFailure, ValidationError
from models import (
    CATCH_ALL_FOLDER_ID,
    Application,
    GridItem,
    LaunchmatFolder,
    Preferences,
    ScanResult,
)
from scanner import AppScanner
from store import (
    JsonFileBackend,
    LaunchmatStore,
    default_preferences_path,
    default_store_path,
    load_preferences,
    save_preferences,
)
from utils import filter_by_name, page_count, page_slice

logger = logging.getLogger(__name__)


def configure_locale() -> None:
    try:
        locale.setlocale(locale.LC_COLLATE, "")
    except locale.Error as exc:
        logger.debug("Keeping the default collation locale: %s", exc)


@dataclass
class SessionState:
    applications: List[Application] = field(default_factory=list)
    folders: List[LaunchmatFolder] = field(default_factory=list)
    mappings: Dict[str, str] = field(default_factory=dict)
    current_folder: Optional[str] = None
    current_page: int = 0
    search_text: str = ""
    last_scan_time: Optional[str] = None
    error: str = ""


@dataclass
class SessionStatistics:
    total_folders: int
    total_applications: int
    discovered_applications: int


class LaunchmatController:
    """Session orchestrator between discovery, the store and the presentation layer.

    Mutations go to the store first; the in-memory view is patched only once the
    store call has returned, so a StorageWriteFailure leaves the view untouched.
    """

    def __init__(
        self,
        store: LaunchmatStore,
        scanner: Optional[AppScanner] = None,
        preferences: Optional[Preferences] = None,
        preferences_path: Optional[str] = None,
    ) -> None:
        self.store = store
        self.scanner = scanner or AppScanner()
        self.preferences = preferences or Preferences()
        self.preferences_path = preferences_path
        self.state = SessionState()

    @classmethod
    def from_data_dir(cls, scanner: Optional[AppScanner] = None) -> "LaunchmatController":
        """Controller backed by the JSON store and preferences in the resolved data dir."""
        configure_locale()
        store_path = default_store_path()
        preferences_path = default_preferences_path()
        logger.info("Using store %s", store_path)
        return cls(
            LaunchmatStore(JsonFileBackend(store_path)),
            scanner,
            load_preferences(preferences_path),
            preferences_path=preferences_path,
        )

    def save_preferences(self, preferences: Preferences) -> None:
        if self.preferences_path:
            save_preferences(self.preferences_path, preferences)
        self.preferences = preferences
        self.state.current_page = 0

    # --- activation ---

    def activate(self) -> SessionState:
        self.state = SessionState()
        folders = self.store.load_folders()
        applications = self.scanner.scan(self.preferences.scan_roots)
        self.state.applications = applications
        self.state.folders = folders
        self._reconcile(applications)
        return self.state

    def refresh(self) -> ScanResult:
        previous = list(self.state.applications)
        applications = self.scanner.scan(self.preferences.scan_roots)
        result = diff_applications(applications, previous)
        self.state.applications = applications
        if result.new_applications or not previous:
            self._reconcile(applications)
        logger.info(
            "Rescan found %d new and %d removed applications",
            len(result.new_applications),
            len(result.removed_application_ids),
        )
        return result

    def _reconcile(self, applications: Sequence[Application]) -> None:
        try:
            if self.preferences.auto_organize:
                self.state.folders = self.store.auto_categorize_new_apps(applications, self.state.folders)
            self.state.last_scan_time = self.store.record_scan(self.state.folders)
        except StorageWriteFailure as exc:
            logger.error("Failed to save organized applications: %s", exc)
            self.state.error = str(exc)
        self.state.mappings = self.store.load_application_mappings()
        self._sort_folders()

    def reload(self) -> SessionState:
        current = self.state
        self.state = SessionState(
            applications=current.applications,
            folders=self.store.load_folders(),
            mappings=self.store.load_application_mappings(),
            last_scan_time=self.store.get_last_scan_time(),
        )
        return self.state

    # --- navigation ---

    def open_folder(self, folder_id: str) -> None:
        if self.folder(folder_id) is None:
            raise FolderNotFoundError(folder_id)
        self.state.current_folder = folder_id
        self.state.current_page = 0
        self.state.search_text = ""

    def go_back(self) -> None:
        self.state.current_folder = None
        self.state.current_page = 0
        self.state.search_text = ""

    def set_search_text(self, text: str) -> None:
        self.state.search_text = text or ""
        self.state.current_page = 0

    def visible_items(self) -> List[GridItem]:
        state = self.state
        if state.current_folder:
            folder = self.folder(state.current_folder)
            if folder is None:
                return []
            apps = filter_by_name(self.folder_applications(folder), state.search_text, lambda app: app.name)
            return [GridItem.of_application(app) for app in apps]
        if not state.search_text.strip():
            return [GridItem.of_folder(folder) for folder in state.folders]
        apps = filter_by_name(state.applications, state.search_text, lambda app: app.name)
        return [GridItem.of_application(app) for app in apps]

    def total_pages(self) -> int:
        return page_count(len(self.visible_items()), self.preferences.items_per_page)

    def current_page_items(self) -> List[GridItem]:
        return page_slice(self.visible_items(), self.state.current_page, self.preferences.items_per_page)

    def next_page(self) -> int:
        pages = self.total_pages()
        if pages:
            self.state.current_page = self.state.current_page + 1 if self.state.current_page < pages - 1 else 0
        return self.state.current_page

    def previous_page(self) -> int:
        pages = self.total_pages()
        if pages:
            self.state.current_page = self.state.current_page - 1 if self.state.current_page > 0 else pages - 1
        return self.state.current_page

    # --- read accessors ---

    def folder(self, folder_id: str) -> Optional[LaunchmatFolder]:
        return next((folder for folder in self.state.folders if folder.id == folder_id), None)

    def application(self, app_id: str) -> Optional[Application]:
        return next((app for app in self.state.applications if app.id == app_id), None)

    def folder_applications(self, folder: LaunchmatFolder) -> List[Application]:
        """Members of `folder` in discovery (name) order; unknown ids are skipped."""
        members = set(folder.application_ids)
        return [app for app in self.state.applications if app.id in members]

    def quick_add_groups(self) -> Tuple[List[Application], List[Application]]:
        return split_categorized(self.state.applications, self.state.mappings)

    def statistics(self) -> SessionStatistics:
        return SessionStatistics(
            total_folders=len(self.state.folders),
            total_applications=sum(len(folder.application_ids) for folder in self.state.folders),
            discovered_applications=len(self.state.applications),
        )

    # --- folder mutations ---

    def create_folder(self, name: str, color: Optional[str] = None, icon: str = "folder") -> LaunchmatFolder:
        folder = self.store.create_folder(name, color or self.preferences.default_folder_color, icon)
        self.state.folders.append(folder)
        self._sort_folders()
        return folder

    def update_folder(
        self,
        folder_id: str,
        name: Optional[str] = None,
        color: Optional[str] = None,
        icon: Optional[str] = None,
    ) -> Optional[LaunchmatFolder]:
        updated = self.store.update_folder(folder_id, name=name, color=color, icon=icon)
        if updated is None:
            return None
        local = self.folder(folder_id)
        if local is not None:
            local.name = updated.name
            local.color = updated.color
            local.icon = updated.icon
            local.updated_at = updated.updated_at
        return updated

    def delete_folder(self, folder_id: str) -> None:
        self.store.delete_folder(folder_id)
        doomed = self.folder(folder_id)
        if doomed is None:
            return
        catch_all = self.folder(CATCH_ALL_FOLDER_ID)
        for app_id in doomed.application_ids:
            if catch_all is not None:
                catch_all.add_application(app_id)
                self.state.mappings[app_id] = CATCH_ALL_FOLDER_ID
            else:
                self.state.mappings.pop(app_id, None)
        self.state.folders = [folder for folder in self.state.folders if folder.id != folder_id]
        for position, folder in enumerate(self.state.folders):
            folder.position = position
        if self.state.current_folder == folder_id:
            self.go_back()

    def reorder_folders(self, ordered_ids: Sequence[str]) -> None:
        self.state.folders = self.store.reorder_folders(ordered_ids)

    def move_folder(self, folder_id: str, direction: str) -> bool:
        """Swap a folder with its neighbour; `direction` is "up" or "down"."""
        if direction not in ("up", "down"):
            raise ValidationError(f"Unknown direction: {direction}")
        ids = [folder.id for folder in self.state.folders]
        if folder_id not in ids:
            raise FolderNotFoundError(folder_id)
        index = ids.index(folder_id)
        target = index - 1 if direction == "up" else index + 1
        if target < 0 or target >= len(ids):
            return False
        ids[index], ids[target] = ids[target], ids[index]
        self.reorder_folders(ids)
        return True

    # --- application mutations ---

    def move_app(self, app_id: str, to_folder_id: str) -> None:
        from_folder_id = self.state.mappings.get(app_id)
        self.store.move_app_to_folder(app_id, from_folder_id, to_folder_id)
        self._patch_membership(app_id, to_folder_id)

    def remove_app(self, app_id: str) -> None:
        if not self.state.mappings.get(app_id):
            return
        self.store.remove_app_from_folder(app_id)
        self._patch_membership(app_id, CATCH_ALL_FOLDER_ID)

    def _patch_membership(self, app_id: str, to_folder_id: str) -> None:
        for folder in self.state.folders:
            if folder.id == to_folder_id:
                folder.add_application(app_id)
            else:
                folder.remove_application(app_id)
        self.state.mappings[app_id] = to_folder_id

    # --- external actions ---

    def launch(self, app: Application) -> None:
        self.scanner.launch(app)

    def reveal(self, app: Application) -> None:
        self.scanner.reveal_in_file_browser(app)

    def show_info(self, app: Application) -> None:
        self.scanner.show_info(app)

    # --- settings ---

    def export_settings(self) -> str:
        return self.store.export_settings()

    def import_settings(self, data: str) -> SessionState:
        self.store.import_settings(data)
        return self.reload()

    def clear_all_data(self) -> SessionState:
        self.store.clear_all_data()
        return self.reload()

    def _sort_folders(self) -> None:
        self.state.folders.sort(key=lambda folder: folder.position)
