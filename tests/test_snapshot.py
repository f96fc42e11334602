"""Hash snapshot tests."""
from __future__ import annotations

from pathlib import Path

import pytest

from k3sctl.snapshot import ABSENT, take_snapshot


def test_missing_files_are_recorded_as_absent(tmp_path: Path) -> None:
    """Missing paths do not fail the snapshot."""
    snapshot = take_snapshot([tmp_path / "missing"])

    assert snapshot.entries == ((tmp_path / "missing", ABSENT),)


def test_identical_content_compares_equal(tmp_path: Path) -> None:
    """Unchanged files produce equal snapshots."""
    binary = tmp_path / "k3s"
    binary.write_bytes(b"bin")
    paths = [binary, tmp_path / "k3s.service"]

    before = take_snapshot(paths)
    after = take_snapshot(paths)

    assert before == after
    assert before.changed_paths(after) == []


def test_changed_and_created_files_are_reported(tmp_path: Path) -> None:
    """Modified and newly created files show up as changes."""
    binary = tmp_path / "k3s"
    unit = tmp_path / "k3s.service"
    binary.write_bytes(b"v1")
    before = take_snapshot([binary, unit])

    binary.write_bytes(b"v2")
    unit.write_text("[Unit]\n")
    after = take_snapshot([binary, unit])

    assert before != after
    assert before.changed_paths(after) == [binary, unit]


def test_unreadable_files_are_recorded_as_absent(
    tmp_path: Path,
    monkeypatch: pytest.MonkeyPatch,
) -> None:
    """A file that exists but cannot be hashed does not abort the snapshot."""
    env_file = tmp_path / "k3s.service.env"
    env_file.write_text("K3S_TOKEN=tok\n")

    def deny(path: Path) -> str:
        raise PermissionError(13, "Permission denied", str(path))

    monkeypatch.setattr("k3sctl.snapshot.sha256_file", deny)

    snapshot = take_snapshot([env_file])

    assert snapshot.entries == ((env_file, ABSENT),)
