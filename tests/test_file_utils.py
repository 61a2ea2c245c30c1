from __future__ import annotations

from pathlib import Path

from services.file_utils import copy_file, copy_tree, place_file, unique_path


def test_unique_path_returns_free_path_unchanged(tmp_path: Path) -> None:
    target = tmp_path / "report.txt"
    assert unique_path(target) == target


def test_unique_path_appends_first_free_suffix(tmp_path: Path) -> None:
    (tmp_path / "report.txt").write_text("a")
    (tmp_path / "report (1).txt").write_text("b")
    (tmp_path / "report (2).txt").write_text("c")
    result = unique_path(tmp_path / "report.txt")
    assert result == tmp_path / "report (3).txt"
    assert not result.exists()


def test_unique_path_prefers_lowest_gap(tmp_path: Path) -> None:
    (tmp_path / "report.txt").write_text("a")
    (tmp_path / "report (2).txt").write_text("c")
    assert unique_path(tmp_path / "report.txt") == tmp_path / "report (1).txt"


def test_unique_path_without_extension_and_with_double_suffix(tmp_path: Path) -> None:
    (tmp_path / "archive").mkdir()
    (tmp_path / "bundle.tar.gz").write_text("x")
    assert unique_path(tmp_path / "archive") == tmp_path / "archive (1)"
    assert unique_path(tmp_path / "bundle.tar.gz") == tmp_path / "bundle.tar (1).gz"


def test_unique_path_never_returns_existing_path(tmp_path: Path) -> None:
    target = tmp_path / "setup.exe"
    produced: list[Path] = []
    for _ in range(5):
        candidate = unique_path(target)
        assert not candidate.exists()
        candidate.write_text("x")
        produced.append(candidate)
    assert [p.name for p in produced] == [
        "setup.exe",
        "setup (1).exe",
        "setup (2).exe",
        "setup (3).exe",
        "setup (4).exe",
    ]


def test_copy_file_backs_up_changed_destination(tmp_path: Path) -> None:
    source = tmp_path / "src" / "settings.json"
    source.parent.mkdir()
    source.write_text("new")
    destination = tmp_path / "dst" / "settings.json"
    destination.parent.mkdir()
    destination.write_text("old")

    backup = copy_file(source, destination, backup_existing=True)

    assert backup == destination.parent / "settings (1).json"
    assert backup.read_text() == "old"
    assert destination.read_text() == "new"


def test_copy_file_skips_backup_for_identical_content(tmp_path: Path) -> None:
    source = tmp_path / "a.txt"
    source.write_text("same")
    destination = tmp_path / "nested" / "a.txt"
    destination.parent.mkdir()
    destination.write_text("same")
    assert copy_file(source, destination, backup_existing=True) is None
    assert sorted(p.name for p in destination.parent.iterdir()) == ["a.txt"]


def test_copy_file_creates_parent_directories(tmp_path: Path) -> None:
    source = tmp_path / "a.txt"
    source.write_text("data")
    destination = tmp_path / "deep" / "er" / "a.txt"
    assert copy_file(source, destination) is None
    assert destination.read_text() == "data"


def test_copy_tree_merges_into_existing_directory(tmp_path: Path) -> None:
    source = tmp_path / "profile"
    (source / "sub").mkdir(parents=True)
    (source / "Bookmarks").write_text("b")
    (source / "sub" / "Prefs").write_text("p")
    destination = tmp_path / "target"
    destination.mkdir()
    (destination / "Keep").write_text("k")

    assert copy_tree(source, destination) == 2
    assert (destination / "Bookmarks").read_text() == "b"
    assert (destination / "sub" / "Prefs").read_text() == "p"
    assert (destination / "Keep").exists()


def test_place_file_reuses_identical_and_renames_different(tmp_path: Path) -> None:
    source = tmp_path / "wall.jpg"
    source.write_bytes(b"\x01\x02")
    folder = tmp_path / "Wallpapers"

    first = place_file(source, folder)
    again = place_file(source, folder)
    assert first == again == folder / "wall.jpg"

    source.write_bytes(b"\x03")
    changed = place_file(source, folder)
    assert changed == folder / "wall (1).jpg"
    assert changed.read_bytes() == b"\x03"
