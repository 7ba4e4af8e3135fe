import json
from typing import Dict, List, Optional, Sequence

import pytest

from controller import LaunchmatController
from errors import FolderNotFoundError, LaunchFailure, StorageWriteFailure, ValidationError
from models import Application, ItemKind, Preferences
from scanner import AppScanner
from store import (
    ENV_DATA_DIR,
    PREFERENCES_FILENAME,
    STORE_FILENAME,
    LaunchmatStore,
    MemoryBackend,
    load_preferences,
)


class _FakeScanner(AppScanner):
    def __init__(self, apps: List[Application]) -> None:
        super().__init__()
        self.result = list(apps)
        self.launched: List[str] = []
        self.fail_launch = False

    def scan(self, roots: Optional[Sequence[str]] = None) -> List[Application]:
        self.apps = list(self.result)
        return self.apps

    def launch(self, app: Application) -> None:
        if self.fail_launch:
            raise LaunchFailure(app.name, OSError("boom"))
        self.launched.append(app.id)


class _FailingBackend(MemoryBackend):
    def __init__(self) -> None:
        super().__init__()
        self.fail = False

    def set_items(self, items: Dict[str, str]) -> None:
        if self.fail:
            raise OSError("disk full")
        super().set_items(items)


def _app(app_id: str, name: str, category: str) -> Application:
    return Application(
        id=app_id,
        name=name,
        bundle_identifier=f"com.example.{app_id}",
        path=f"/Applications/{name}.app",
        last_modified="2024-01-01T00:00:00.000+00:00",
        category=category,
    )


APPS = [
    _app("calc", "Calculator", "Utilities"),
    _app("chess", "Chess", "Games"),
    _app("slack", "Slack", "Communication"),
    _app("xcode", "Xcode", "Development"),
]


def _controller(items_per_page: int = 28, backend: Optional[MemoryBackend] = None) -> LaunchmatController:
    prefs = Preferences(items_per_page=items_per_page, scan_roots=["/nowhere"])
    store = LaunchmatStore(backend or MemoryBackend())
    controller = LaunchmatController(store, _FakeScanner(APPS), prefs)
    controller.activate()
    return controller


def test_activate_organizes_new_apps() -> None:
    controller = _controller()
    state = controller.state
    assert [app.id for app in state.applications] == ["calc", "chess", "slack", "xcode"]
    assert len(state.folders) == 8
    assert controller.folder("folder_development").application_ids == ["xcode"]
    assert controller.folder("folder_games").application_ids == ["chess"]
    assert state.mappings["slack"] == "folder_communication"
    assert state.last_scan_time
    assert controller.store.get_last_scan_time() == state.last_scan_time
    assert state.error == ""


def test_activate_without_auto_organize_leaves_apps_uncategorized() -> None:
    store = LaunchmatStore(MemoryBackend())
    prefs = Preferences(auto_organize=False, scan_roots=[])
    controller = LaunchmatController(store, _FakeScanner(APPS), prefs)
    controller.activate()
    uncategorized, categorized = controller.quick_add_groups()
    assert len(uncategorized) == 4
    assert categorized == []


def test_activate_survives_storage_failure() -> None:
    backend = _FailingBackend()
    LaunchmatStore(backend).load_folders()
    backend.fail = True
    controller = LaunchmatController(LaunchmatStore(backend), _FakeScanner(APPS), Preferences(scan_roots=[]))
    state = controller.activate()
    assert len(state.applications) == 4
    assert len(state.folders) == 8
    assert "disk full" in state.error


def test_root_view_shows_folders_then_search_shows_apps() -> None:
    controller = _controller()
    items = controller.visible_items()
    assert all(item.kind is ItemKind.FOLDER for item in items)
    assert [item.title for item in items][0] == "Productivity"
    controller.set_search_text("c")
    titles = [item.title for item in controller.visible_items()]
    assert titles == ["Calculator", "Chess", "Slack", "Xcode"]
    controller.set_search_text("CHE")
    items = controller.visible_items()
    assert [item.kind for item in items] == [ItemKind.APPLICATION]
    assert items[0].application.id == "chess"


def test_open_folder_and_go_back() -> None:
    controller = _controller()
    controller.set_search_text("x")
    controller.open_folder("folder_games")
    assert controller.state.search_text == ""
    assert [item.id for item in controller.visible_items()] == ["chess"]
    controller.set_search_text("nothing")
    assert controller.visible_items() == []
    controller.go_back()
    assert controller.state.current_folder is None
    with pytest.raises(FolderNotFoundError):
        controller.open_folder("folder_missing")


def test_paging_wraps_around() -> None:
    controller = _controller(items_per_page=3)
    assert controller.total_pages() == 3
    assert [item.title for item in controller.current_page_items()] == [
        "Productivity",
        "Development",
        "Graphics & Design",
    ]
    assert controller.next_page() == 1
    assert controller.next_page() == 2
    assert [item.title for item in controller.current_page_items()] == ["Communication", "Other"]
    assert controller.next_page() == 0
    assert controller.previous_page() == 2
    controller.set_search_text("slack")
    assert controller.state.current_page == 0
    assert controller.total_pages() == 1


def test_move_and_remove_app_patch_session() -> None:
    controller = _controller()
    controller.move_app("xcode", "folder_games")
    assert controller.folder("folder_games").application_ids == ["chess", "xcode"]
    assert "xcode" not in controller.folder("folder_development").application_ids
    assert controller.state.mappings["xcode"] == "folder_games"
    assert controller.store.load_application_mappings()["xcode"] == "folder_games"
    controller.remove_app("xcode")
    assert "xcode" in controller.folder("folder_other").application_ids
    assert "xcode" not in controller.folder("folder_games").application_ids
    assert controller.state.mappings["xcode"] == "folder_other"


def test_failed_write_leaves_session_untouched() -> None:
    backend = _FailingBackend()
    controller = _controller(backend=backend)
    backend.fail = True
    with pytest.raises(StorageWriteFailure):
        controller.move_app("xcode", "folder_games")
    assert controller.folder("folder_games").application_ids == ["chess"]
    assert controller.state.mappings["xcode"] == "folder_development"


def test_folder_crud_through_controller() -> None:
    controller = _controller()
    folder = controller.create_folder("Work")
    assert folder.color == "#007AFF"
    assert controller.state.folders[-1].id == folder.id
    controller.update_folder(folder.id, name="Office")
    assert controller.folder(folder.id).name == "Office"
    assert controller.update_folder("folder_missing", name="X") is None

    controller.move_app("slack", folder.id)
    controller.open_folder(folder.id)
    controller.delete_folder(folder.id)
    assert controller.folder(folder.id) is None
    assert controller.state.current_folder is None
    assert "slack" in controller.folder("folder_other").application_ids
    assert controller.state.mappings["slack"] == "folder_other"
    assert [f.position for f in controller.state.folders] == list(range(8))

    ids = [f.id for f in controller.state.folders]
    controller.reorder_folders(list(reversed(ids)))
    assert [f.id for f in controller.state.folders] == list(reversed(ids))


def test_refresh_reports_new_and_removed_apps() -> None:
    controller = _controller()
    scanner = controller.scanner
    scanner.result = APPS[1:] + [_app("figma", "Figma", "Graphics")]
    result = controller.refresh()
    assert [app.id for app in result.new_applications] == ["figma"]
    assert result.removed_application_ids == ["calc"]
    assert controller.folder("folder_graphics").application_ids == ["figma"]
    assert controller.state.mappings["figma"] == "folder_graphics"


def test_launch_is_delegated_and_failures_propagate() -> None:
    controller = _controller()
    app = controller.application("xcode")
    controller.launch(app)
    assert controller.scanner.launched == ["xcode"]
    controller.scanner.fail_launch = True
    with pytest.raises(LaunchFailure):
        controller.launch(app)


def test_import_and_clear_reload_session() -> None:
    controller = _controller()
    exported = controller.export_settings()
    controller.move_app("xcode", "folder_games")
    controller.import_settings(exported)
    assert controller.state.mappings["xcode"] == "folder_development"
    assert controller.folder("folder_development").application_ids == ["xcode"]
    controller.clear_all_data()
    assert controller.state.mappings == {}
    assert all(folder.application_ids == [] for folder in controller.state.folders)
    assert len(controller.state.applications) == 4


def test_folder_contents_follow_discovery_order() -> None:
    controller = _controller()
    controller.move_app("xcode", "folder_games")
    controller.move_app("calc", "folder_games")
    assert controller.folder("folder_games").application_ids == ["chess", "xcode", "calc"]
    controller.open_folder("folder_games")
    assert [item.id for item in controller.visible_items()] == ["calc", "chess", "xcode"]


def test_move_folder_swaps_neighbours() -> None:
    controller = _controller()
    original = [folder.id for folder in controller.state.folders]
    assert controller.move_folder("folder_development", "up") is True
    expected = [original[1], original[0]] + original[2:]
    assert [folder.id for folder in controller.state.folders] == expected
    assert [folder.id for folder in controller.store.load_folders()] == expected
    assert [folder.position for folder in controller.state.folders] == list(range(8))

    assert controller.move_folder(expected[0], "up") is False
    assert controller.move_folder(expected[-1], "down") is False
    assert [folder.id for folder in controller.state.folders] == expected
    with pytest.raises(FolderNotFoundError):
        controller.move_folder("folder_missing", "down")
    with pytest.raises(ValidationError):
        controller.move_folder("folder_games", "sideways")


def test_statistics_count_folders_and_members() -> None:
    controller = _controller()
    stats = controller.statistics()
    assert (stats.total_folders, stats.total_applications, stats.discovered_applications) == (8, 4, 4)
    controller.create_folder("Work")
    assert controller.statistics().total_folders == 9


def test_from_data_dir_uses_resolved_store_and_preferences(tmp_path, monkeypatch) -> None:
    monkeypatch.setenv(ENV_DATA_DIR, str(tmp_path))
    (tmp_path / PREFERENCES_FILENAME).write_text(
        json.dumps({"items_per_page": 3, "scan_roots": ["/nowhere"]}), encoding="utf-8"
    )
    controller = LaunchmatController.from_data_dir(_FakeScanner(APPS))
    assert controller.preferences.items_per_page == 3
    assert controller.preferences.scan_roots == ["/nowhere"]
    controller.activate()
    assert (tmp_path / STORE_FILENAME).exists()
    assert controller.total_pages() == 3

    controller.save_preferences(Preferences(items_per_page=5, scan_roots=["/nowhere"]))
    assert load_preferences(str(tmp_path / PREFERENCES_FILENAME)).items_per_page == 5

    again = LaunchmatController.from_data_dir(_FakeScanner(APPS))
    assert again.preferences.items_per_page == 5
    assert again.store.load_application_mappings()["xcode"] == "folder_development"
