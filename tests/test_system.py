from pathlib import Path
from unittest.mock import MagicMock

import pytest

from wipctl import system


def test_get_machine_name_prefers_override(tmp_path: Path, mocker: MagicMock) -> None:
    """Verifies that an explicit override beats the name file and the hostname.

    Args:
        tmp_path (Path): Pytest fixture for a temporary directory.
        mocker (MagicMock): Pytest fixture for mocking.
    """
    name_file = tmp_path / "machine_name"
    name_file.write_text("from-file")
    mocker.patch("wipctl.system.get_machine_name_file", return_value=name_file)

    assert system.get_machine_name("My Laptop") == "My-Laptop"


def test_get_machine_name_reads_name_file(tmp_path: Path, mocker: MagicMock) -> None:
    name_file = tmp_path / "machine_name"
    name_file.write_text("studio-mac\n")
    mocker.patch("wipctl.system.get_machine_name_file", return_value=name_file)
    mocker.patch("socket.gethostname", return_value="ignored.local")

    assert system.get_machine_name() == "studio-mac"


def test_get_machine_name_hostname_fallback(mocker: MagicMock) -> None:
    """
    Verifies that `get_machine_name` falls back
    to the short hostname when no name file exists.

    Args:
        mocker (MagicMock): Pytest fixture for mocking.
    """
    mocker.patch("wipctl.system.get_machine_name_file", return_value=Path("/no/file"))
    mocker.patch("socket.gethostname", return_value="host.domain.com")

    # Expect only the short hostname (first component).
    assert system.get_machine_name() == "host"


def test_blank_name_file_is_ignored(tmp_path: Path, mocker: MagicMock) -> None:
    name_file = tmp_path / "machine_name"
    name_file.write_text("   \n")
    mocker.patch("wipctl.system.get_machine_name_file", return_value=name_file)
    mocker.patch("socket.gethostname", return_value="box")

    assert system.get_machine_name() == "box"


@pytest.mark.parametrize(
    "raw, expected",
    [
        ("dev-box", "dev-box"),
        ("my box", "my-box"),
        ("a..b", "a.b"),
        ("host~^:?*[", "host"),
        ("laptop.lock", "laptop"),
        ("...", "unknown"),
        ("", "unknown"),
    ],
)
def test_sanitize_ref_component(raw: str, expected: str) -> None:
    assert system.sanitize_ref_component(raw) == expected
