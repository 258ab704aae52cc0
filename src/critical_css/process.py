"""外部プロセスの起動・状態確認・出力取得を行う薄いラッパー。"""

from __future__ import annotations

import logging
import subprocess
import tempfile
import time
from dataclasses import dataclass
from typing import IO, Callable, Sequence

from charset_normalizer import from_bytes as detect_charset

from .catalog import Scope
from .command import format_command
from .identifier import generate_identifier
from .providers import Provider

logger = logging.getLogger(__name__)


class ExternalProcess:
    """``subprocess.Popen`` をポーリング前提で扱うためのラッパー。

    標準出力は一時ファイルに書き出すため、出力が大きくてもパイプが
    詰まってプロセスが停止することはありません。
    """

    def __init__(self, command: Sequence[str]) -> None:
        self._command = list(command)
        self._popen: subprocess.Popen[bytes] | None = None
        self._stdout: IO[bytes] | None = None
        self._stderr: IO[bytes] | None = None
        self._started_at: float | None = None

    @property
    def command(self) -> list[str]:
        return list(self._command)

    @property
    def command_line(self) -> str:
        return format_command(self._command)

    def start(self) -> None:
        self._stdout = tempfile.TemporaryFile()
        self._stderr = tempfile.TemporaryFile()
        try:
            self._popen = subprocess.Popen(
                self._command,
                stdin=subprocess.DEVNULL,
                stdout=self._stdout,
                stderr=self._stderr,
            )
        except OSError:
            self.close()
            raise
        self._started_at = time.monotonic()

    def is_running(self) -> bool:
        return self._popen is not None and self._popen.poll() is None

    @property
    def exit_code(self) -> int | None:
        if self._popen is None:
            return None
        return self._popen.poll()

    def is_successful(self) -> bool:
        return self.exit_code == 0

    def elapsed(self) -> float:
        if self._started_at is None:
            return 0.0
        return time.monotonic() - self._started_at

    def output(self) -> str:
        return _decode(_read_all(self._stdout))

    def error_output(self) -> str:
        return _decode(_read_all(self._stderr))

    def kill(self) -> None:
        if self._popen is None or self._popen.poll() is not None:
            return
        self._popen.kill()
        try:
            self._popen.wait(timeout=5)
        except subprocess.TimeoutExpired:
            logger.warning("プロセスの終了を確認できませんでした: pid=%s", self._popen.pid)

    def close(self) -> None:
        for stream in (self._stdout, self._stderr):
            if stream is not None:
                stream.close()
        self._stdout = None
        self._stderr = None


ProcessFactory = Callable[[Sequence[str]], ExternalProcess]


@dataclass(slots=True)
class ProcessContext:
    """スケジューラーが扱う 1 件のジョブ。"""

    provider: Provider
    scope: Scope
    identifier: str
    url: str
    process: ExternalProcess

    @property
    def cache_key(self) -> str:
        return generate_identifier(self.provider.name, self.scope.code, self.identifier)

    @property
    def label(self) -> str:
        return f"[{self.scope.code}:{self.provider.name}|{self.identifier}]"


def _read_all(stream: IO[bytes] | None) -> bytes:
    if stream is None:
        return b""
    stream.seek(0)
    return stream.read()


def _decode(data: bytes) -> str:
    if not data:
        return ""
    encoding = "utf-8"
    try:
        data.decode(encoding)
    except UnicodeDecodeError:
        result = detect_charset(data).best()
        if result is not None and result.encoding:
            encoding = result.encoding
    try:
        return data.decode(encoding, errors="replace")
    except LookupError:
        logger.debug("未知のエンコーディング %s のため UTF-8 フォールバックを使用します。", encoding)
    return data.decode("utf-8", errors="replace")
