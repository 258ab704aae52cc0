from __future__ import annotations

import subprocess
from typing import Sequence

import pytest

from critical_css.command import (
    CriticalBinaryError,
    build_command,
    bust_cache,
    check_binary,
    format_command,
    is_version_supported,
    mask_password,
    sanitize_command,
)


def test_bust_cache_appends_query_parameter() -> None:
    assert bust_cache("https://shop.example/contact/", 1700000000) == "https://shop.example/contact/?ccss_t=1700000000"
    assert bust_cache("https://shop.example/result/?q=a", 5) == "https://shop.example/result/?q=a&ccss_t=5"


def test_build_command_orders_arguments() -> None:
    command = build_command(
        "https://shop.example/",
        ["375x812", "1280x720"],
        [".header", "div[data-val='1,2']"],
        binary="/usr/bin/critical",
        username="admin",
        password="s3cr3t",
    )

    assert command == [
        "/usr/bin/critical",
        "https://shop.example/",
        "--penthouse-forceInclude",
        ".header",
        "--penthouse-forceInclude",
        "div[data-val='1,2']",
        "--dimensions",
        "375x812",
        "--dimensions",
        "1280x720",
        "--user",
        "admin",
        "--pass",
        "s3cr3t",
        "--strict",
        "--minify",
        "--no-request-https.rejectUnauthorized",
        "--ignore-atrule",
        "@font-face",
        "--ignore-atrule",
        "print",
    ]


@pytest.mark.parametrize(("username", "password"), [("admin", None), (None, "secret"), ("", ""), ("admin", "")])
def test_build_command_skips_incomplete_auth(username: str | None, password: str | None) -> None:
    command = build_command("https://x", [], [], username=username, password=password)

    assert "--user" not in command
    assert "--pass" not in command
    assert command[:2] == ["critical", "https://x"]


def test_sanitize_command_masks_password_only() -> None:
    sanitized = sanitize_command("critical https://x --user admin --pass s3cr3t --strict")

    assert sanitized == "critical https://x --user admin --pass ****** --strict"


def test_sanitize_command_masks_quoted_password_at_end() -> None:
    line = format_command(["critical", "https://x", "--user", "admin", "--pass", "p@ss word"])

    assert sanitize_command(line) == "critical https://x --user admin --pass '******'"


def test_sanitize_command_masks_multiline_password() -> None:
    command = ["critical", "https://x", "--user", "admin", "--pass", "pa\nss", "--strict"]

    assert sanitize_command(command) == "critical https://x --user admin --pass '******' --strict"
    assert sanitize_command(format_command(command)) == "critical https://x --user admin --pass '******' --strict"
    assert "ss" not in sanitize_command(command).split("--pass", 1)[1]


def test_mask_password_leaves_original_argv_untouched() -> None:
    command = ["critical", "https://x", "--pass", "s3cr3t"]

    assert mask_password(command) == ["critical", "https://x", "--pass", "******"]
    assert command[-1] == "s3cr3t"


def test_sanitize_command_without_password_is_unchanged() -> None:
    assert sanitize_command("critical https://x --strict") == "critical https://x --strict"


@pytest.mark.parametrize(
    ("version", "supported"),
    [("2.0.6", True), ("2.1.0", True), ("v3.0", True), ("2.0.5", False), ("1.9.9", False), ("2.0", False)],
)
def test_is_version_supported(version: str, supported: bool) -> None:
    assert is_version_supported(version, "2.0.6") is supported


def test_check_binary_returns_version() -> None:
    calls: list[Sequence[str]] = []

    def runner(command: Sequence[str]) -> str:
        calls.append(command)
        return "2.0.6\n"

    assert check_binary("critical", runner=runner) == "2.0.6"
    assert calls == [["critical", "--version"]]


def test_check_binary_rejects_old_version() -> None:
    with pytest.raises(CriticalBinaryError, match="2.0.6"):
        check_binary("critical", runner=lambda command: "1.3.0")


def test_check_binary_reports_missing_binary() -> None:
    def runner(command: Sequence[str]) -> str:
        raise FileNotFoundError(command[0])

    with pytest.raises(CriticalBinaryError, match="見つかりません"):
        check_binary("/nowhere/critical", runner=runner)


def test_check_binary_reports_failing_version_command() -> None:
    def runner(command: Sequence[str]) -> str:
        raise subprocess.CalledProcessError(1, list(command))

    with pytest.raises(CriticalBinaryError):
        check_binary("critical", runner=runner)


def test_check_binary_rejects_unparsable_output() -> None:
    with pytest.raises(CriticalBinaryError):
        check_binary("critical", runner=lambda command: "unknown")
