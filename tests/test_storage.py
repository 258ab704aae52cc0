from __future__ import annotations

from pathlib import Path

from critical_css.storage import CriticalCssStorage


def test_save_and_read_round_trip(tmp_path: Path) -> None:
    storage = CriticalCssStorage(tmp_path)

    path = storage.save("abc", "body{color:red}")

    assert path == tmp_path / "critical-css" / "abc.css"
    assert storage.read("abc") == "body{color:red}"
    assert storage.size_of("abc") == len("body{color:red}")


def test_save_twice_overwrites_instead_of_appending(tmp_path: Path) -> None:
    storage = CriticalCssStorage(tmp_path)
    content = "h1{font-weight:700}é"

    storage.save("key", content)
    storage.save("key", content)

    assert storage.read("key") == content
    assert storage.size_of("key") == len(content.encode("utf-8"))


def test_missing_artifact_is_absent(tmp_path: Path) -> None:
    storage = CriticalCssStorage(tmp_path)

    assert storage.read("missing") is None
    assert storage.size_of("missing") is None


def test_clean_removes_every_artifact(tmp_path: Path) -> None:
    storage = CriticalCssStorage(tmp_path)
    keys = ["one", "two", "three"]
    for key in keys:
        storage.save(key, "a{}")

    storage.clean()

    assert not storage.directory.exists()
    assert all(storage.read(key) is None for key in keys)


def test_clean_is_idempotent(tmp_path: Path) -> None:
    storage = CriticalCssStorage(tmp_path)

    storage.clean()
    storage.clean()

    assert not storage.directory.exists()


def test_save_none_writes_empty_file(tmp_path: Path) -> None:
    storage = CriticalCssStorage(tmp_path)

    storage.save("empty", None)

    assert storage.read("empty") == ""
    assert storage.size_of("empty") == 0


def test_undecodable_artifact_is_absent(tmp_path: Path) -> None:
    storage = CriticalCssStorage(tmp_path)
    storage.save("broken", "")
    storage.path_for("broken").write_bytes(b"\xff\xfe broken")

    assert storage.read("broken") is None
