"""外部ツール ``critical`` の呼び出しコマンドを組み立てるユーティリティ。"""

from __future__ import annotations

import logging
import re
import shlex
import subprocess
import time
from typing import Callable, Sequence

logger = logging.getLogger(__name__)

DEFAULT_BINARY = "critical"
MINIMUM_VERSION = "2.0.6"
CACHE_BUST_PARAMETER = "ccss_t"
PASSWORD_MASK = "******"

FIXED_FLAGS = (
    "--strict",
    "--minify",
    "--no-request-https.rejectUnauthorized",
    "--ignore-atrule",
    "@font-face",
    "--ignore-atrule",
    "print",
)

_PASSWORD_PATTERN = re.compile(r"""(--pass\s+)(['"]?)(.+?)(\2)(\s|$)""", re.DOTALL)
_VERSION_PATTERN = re.compile(r"(\d+(?:\.\d+)*)")

VersionRunner = Callable[[Sequence[str]], str]


class CriticalBinaryError(RuntimeError):
    """``critical`` が利用できない、またはバージョン要件を満たさない場合の例外。"""


def bust_cache(url: str, timestamp: int | None = None) -> str:
    """前段のキャッシュを回避するためのクエリパラメータを付与します。"""

    stamp = int(time.time()) if timestamp is None else timestamp
    separator = "&" if "?" in url else "?"
    return f"{url}{separator}{CACHE_BUST_PARAMETER}={stamp}"


def build_command(
    url: str,
    dimensions: Sequence[str],
    force_include_selectors: Sequence[str],
    binary: str = DEFAULT_BINARY,
    username: str | None = None,
    password: str | None = None,
) -> list[str]:
    command = [binary or DEFAULT_BINARY, url]
    for selector in force_include_selectors:
        command.extend(["--penthouse-forceInclude", selector])
    for dimension in dimensions:
        command.extend(["--dimensions", dimension])
    if username and password:
        command.extend(["--user", username, "--pass", password])
    command.extend(FIXED_FLAGS)
    return command


def format_command(command: Sequence[str]) -> str:
    return shlex.join(command)


def mask_password(command: Sequence[str]) -> list[str]:
    """``--pass`` の直後の引数をマスクした argv のコピーを返します。"""

    masked = list(command)
    for index, argument in enumerate(masked[:-1]):
        if argument == "--pass":
            masked[index + 1] = PASSWORD_MASK
    return masked


def sanitize_command(command: str | Sequence[str]) -> str:
    """``--pass`` に続く値をマスクしたコマンドラインを返します。

    argv を渡した場合は結合前にマスクするため、改行や引用符を含む値も漏れません。
    文字列の場合は (引用符付きを含む) 値を正規表現で置換します。
    """

    if not isinstance(command, str):
        return format_command(mask_password(command))
    return _PASSWORD_PATTERN.sub(lambda m: f"{m.group(1)}{m.group(2)}{PASSWORD_MASK}{m.group(2)}{m.group(5)}", command)


def parse_version(raw: str) -> tuple[int, ...]:
    match = _VERSION_PATTERN.search(raw or "")
    if match is None:
        raise CriticalBinaryError(f"critical のバージョンを解釈できません: {raw!r}")
    return tuple(int(part) for part in match.group(1).split("."))


def is_version_supported(version: str, minimum: str = MINIMUM_VERSION) -> bool:
    current = parse_version(version)
    required = parse_version(minimum)
    width = max(len(current), len(required))
    return current + (0,) * (width - len(current)) >= required + (0,) * (width - len(required))


def get_version(binary: str = DEFAULT_BINARY, runner: VersionRunner | None = None) -> str:
    command = [binary or DEFAULT_BINARY, "--version"]
    run = runner or _run_version_command
    try:
        return run(command).strip()
    except FileNotFoundError as exc:
        raise CriticalBinaryError(f"critical が見つかりません: {command[0]}") from exc
    except (OSError, subprocess.SubprocessError) as exc:
        raise CriticalBinaryError(f"critical --version の実行に失敗しました: {exc}") from exc


def check_binary(
    binary: str = DEFAULT_BINARY,
    minimum: str = MINIMUM_VERSION,
    runner: VersionRunner | None = None,
) -> str:
    """``critical`` がインストール済みで、要求バージョン以上であることを確認します。"""

    version = get_version(binary, runner)
    if not is_version_supported(version, minimum):
        raise CriticalBinaryError(
            f"critical {minimum} 以上が必要です (検出したバージョン: {version})"
        )
    logger.debug("critical %s を検出しました。", version)
    return version


def _run_version_command(command: Sequence[str]) -> str:
    completed = subprocess.run(
        list(command),
        capture_output=True,
        text=True,
        check=True,
        timeout=60,
    )
    return completed.stdout
