"""環境変数と ``.env`` ファイルから外部ツールの設定を読み込むローダー。"""

from __future__ import annotations

from dataclasses import dataclass
import logging
import os
from pathlib import Path
from typing import Mapping

logger = logging.getLogger(__name__)

DEFAULT_ENV_NAME = ".env"
BINARY_ENV = "CRITICAL_CSS_BINARY"
USERNAME_ENV = "CRITICAL_CSS_USERNAME"
PASSWORD_ENV = "CRITICAL_CSS_PASSWORD"
PARALLEL_ENV = "CRITICAL_CSS_PARALLEL_PROCESSES"
ENABLED_ENV = "CRITICAL_CSS_ENABLED"

_FALSE_VALUES = {"0", "false", "no", "off"}


@dataclass(slots=True)
class ToolSettings:
    """コマンドライン引数で省略された場合に使う既定値。"""

    binary: str | None
    username: str | None
    password: str | None
    parallel_processes: int | None
    enabled: bool = True


def load_env_file(path: str | Path | None = None) -> dict[str, str]:
    """`.env` ファイルを読み込み、未設定の環境変数を補完します。

    ``path`` を省略した場合はカレントディレクトリの ``.env`` のみを探します。
    既に設定済みの環境変数は上書きしません。
    """

    env_path = _locate_env_file(path)
    if env_path is None or not env_path.is_file():
        return {}
    loaded = parse_env_text(env_path.read_text(encoding="utf-8"))
    for key, value in loaded.items():
        os.environ.setdefault(key, value)
    logger.debug(".env を読み込みました: %s (%d 件)", env_path, len(loaded))
    return loaded


def parse_env_text(text: str) -> dict[str, str]:
    """``KEY=VALUE`` 形式の行を辞書に変換します。``export`` 接頭辞と行末コメントに対応します。"""

    values: dict[str, str] = {}
    for raw_line in text.splitlines():
        line = raw_line.strip()
        if line.startswith("export "):
            line = line[len("export "):].lstrip()
        if not line or line.startswith("#") or "=" not in line:
            continue
        key, raw_value = line.split("=", 1)
        key = key.strip()
        if key:
            values[key] = _parse_value(raw_value.strip())
    return values


def current_tool_settings(source: Mapping[str, str] | None = None) -> ToolSettings:
    """現在の環境変数から外部ツールの設定を読み取ります。"""

    env = source if source is not None else os.environ
    return ToolSettings(
        binary=env.get(BINARY_ENV) or None,
        username=env.get(USERNAME_ENV) or None,
        password=env.get(PASSWORD_ENV) or None,
        parallel_processes=_parse_int(env.get(PARALLEL_ENV)),
        enabled=_parse_flag(env.get(ENABLED_ENV)),
    )


def _parse_int(raw: str | None) -> int | None:
    if raw is None or not raw.strip():
        return None
    try:
        return int(raw.strip())
    except ValueError:
        return None


def _parse_flag(raw: str | None) -> bool:
    if raw is None or not raw.strip():
        return True
    return raw.strip().lower() not in _FALSE_VALUES


def _locate_env_file(path: str | Path | None) -> Path | None:
    if path is not None:
        candidate = Path(path)
        if candidate.is_dir():
            candidate = candidate / DEFAULT_ENV_NAME
        return candidate
    candidate = Path.cwd() / DEFAULT_ENV_NAME
    return candidate if candidate.exists() else None


def _parse_value(value: str) -> str:
    if len(value) >= 2 and value[0] == value[-1] and value[0] in {'"', "'"}:
        return value[1:-1]
    # 引用符なしの値では " #" 以降をコメントとして扱う
    comment = value.find(" #")
    return value[:comment].rstrip() if comment >= 0 else value
