import csv
import json

import openpyxl
import pytest

from errors import ImportFormatError
from import_export import (
    LAYOUT_HEADERS,
    build_snapshot,
    dump_snapshot,
    export_layout_csv,
    export_layout_xlsx,
    layout_rows,
    parse_snapshot,
)
from models import Application, LaunchmatFolder, LaunchmatSettings


def _folders():
    return [
        LaunchmatFolder(id="b", name="Games", color="#FF9FF3", icon="gamepad", position=1,
                        created_at="2024-01-01", application_ids=["chess", "gone"]),
        LaunchmatFolder(id="a", name="Development", color="#4ECDC4", icon="code", position=0,
                        created_at="2024-01-01", application_ids=["xcode"]),
    ]


def _apps():
    return [
        Application(id="xcode", name="Xcode", bundle_identifier="com.apple.dt.Xcode",
                    path="/Applications/Xcode.app", last_modified="t", version="15.0"),
        Application(id="chess", name="Chess", bundle_identifier="com.apple.Chess",
                    path="/Applications/Chess.app", last_modified="t"),
    ]


def test_snapshot_has_all_sections() -> None:
    snapshot = build_snapshot(_folders(), LaunchmatSettings(last_scan_time="t"), {"xcode": "a"})
    payload = json.loads(dump_snapshot(snapshot))
    assert payload["version"] == "1.0.0"
    assert payload["exportedAt"]
    assert payload["mappings"] == {"xcode": "a"}
    assert [folder["id"] for folder in payload["folders"]] == ["b", "a"]


def test_parse_snapshot_sections_are_optional() -> None:
    snapshot = parse_snapshot(json.dumps({"settings": {"lastScanTime": "t"}}))
    assert snapshot.folders is None
    assert snapshot.mappings is None
    assert snapshot.settings.last_scan_time == "t"


def test_parse_snapshot_rejects_duplicate_folder_ids() -> None:
    folder = _folders()[0].to_dict()
    with pytest.raises(ImportFormatError):
        parse_snapshot(json.dumps({"folders": [folder, folder]}))


def test_layout_rows_follow_folder_position() -> None:
    rows = layout_rows(_folders(), _apps())
    assert rows == [
        ["Development", "0", "Xcode", "com.apple.dt.Xcode", "15.0", "/Applications/Xcode.app"],
        ["Games", "1", "Chess", "com.apple.Chess", "", "/Applications/Chess.app"],
    ]


def test_export_layout_csv(tmp_path) -> None:
    path = tmp_path / "layout.csv"
    export_layout_csv(str(path), _folders(), _apps())
    with open(path, newline="", encoding="utf-8") as fh:
        rows = list(csv.reader(fh))
    assert rows[0] == LAYOUT_HEADERS
    assert [row[2] for row in rows[1:]] == ["Xcode", "Chess"]


def test_export_layout_xlsx(tmp_path) -> None:
    path = tmp_path / "layout.xlsx"
    export_layout_xlsx(str(path), _folders(), _apps())
    book = openpyxl.load_workbook(path)
    sheet = book["Folders"]
    values = [[cell.value for cell in row] for row in sheet.iter_rows()]
    assert values[0] == LAYOUT_HEADERS
    assert values[1][2] == "Xcode"
