"""クリティカル CSS 生成の設定モデル群。"""

from __future__ import annotations

import re
from dataclasses import dataclass, field
from datetime import datetime, timezone
from pathlib import Path
from typing import Iterable, Optional, Sequence

from .command import DEFAULT_BINARY, MINIMUM_VERSION
from .storage import DIRECTORY

DEFAULT_DIMENSIONS: tuple[str, ...] = (
    "375x812",  # XS / iPhone X
    "576x1152",  # SM
    "768x1024",  # MD / iPad
    "1024x768",  # LG / iPad
    "1280x720",  # XL
)
DEFAULT_POLL_INTERVAL = 0.5


def parse_dimensions(raw: str | Iterable[str] | None) -> tuple[str, ...]:
    """カンマ区切りの画面サイズを正規化します。空なら既定値を返します。"""

    if raw is None:
        return DEFAULT_DIMENSIONS
    chunks = raw.split(",") if isinstance(raw, str) else list(raw)
    dimensions = tuple(chunk.strip() for chunk in chunks if chunk and chunk.strip())
    return dimensions or DEFAULT_DIMENSIONS


def parse_force_include_selectors(raw: str | Iterable[str] | None) -> tuple[str, ...]:
    """改行区切りのセレクタを正規化します。

    セレクタ自体にカンマが含まれることがあるため、区切りは改行のみです。
    """

    if raw is None:
        return ()
    lines = re.split(r"\r\n|\r|\n", raw) if isinstance(raw, str) else list(raw)
    return tuple(line.strip() for line in lines if line and line.strip())


def default_timestamp() -> datetime:
    return datetime.now(timezone.utc)


@dataclass(slots=True)
class CriticalConfig:
    """外部ツール ``critical`` の呼び出し設定。"""

    binary: str = DEFAULT_BINARY
    dimensions: Sequence[str] = DEFAULT_DIMENSIONS
    force_include_selectors: Sequence[str] = ()
    username: str | None = None
    password: str | None = None
    minimum_version: str = MINIMUM_VERSION

    def __post_init__(self) -> None:
        self.binary = self.binary or DEFAULT_BINARY
        self.username = self.username or None
        self.password = self.password or None


@dataclass(slots=True)
class ProcessConfig:
    """並列実行スケジューラーの設定。"""

    parallel_processes: int = 1
    poll_interval: float = DEFAULT_POLL_INTERVAL
    process_timeout: float | None = None

    def __post_init__(self) -> None:
        self.parallel_processes = max(1, int(self.parallel_processes or 0))
        self.poll_interval = max(0.0, float(self.poll_interval))
        if self.process_timeout is not None and self.process_timeout <= 0:
            self.process_timeout = None


@dataclass(slots=True)
class OutputConfig:
    """成果物とログの出力先。"""

    root: Path
    cache_dir: Path = field(init=False)
    logs_dir: Path = field(init=False)

    def __post_init__(self) -> None:
        self.root = Path(self.root)
        self.cache_dir = self.root / DIRECTORY
        self.logs_dir = self.root / "logs"


@dataclass(slots=True)
class GeneratorConfig:
    """生成処理全体を束ねる設定。"""

    output: OutputConfig
    critical: CriticalConfig = field(default_factory=CriticalConfig)
    process: ProcessConfig = field(default_factory=ProcessConfig)
    enabled: bool = True
    clean_before_run: bool = True
    created_at: datetime = field(default_factory=default_timestamp)

    @classmethod
    def from_args(
        cls,
        output_dir: Path,
        binary: Optional[str] = None,
        parallel_processes: Optional[int] = None,
        dimensions: str | Iterable[str] | None = None,
        force_include_selectors: str | Iterable[str] | None = None,
        username: Optional[str] = None,
        password: Optional[str] = None,
        process_timeout: Optional[float] = None,
        poll_interval: Optional[float] = None,
        clean_before_run: bool = True,
        enabled: bool = True,
    ) -> "GeneratorConfig":
        critical = CriticalConfig(
            binary=binary or DEFAULT_BINARY,
            dimensions=parse_dimensions(dimensions),
            force_include_selectors=parse_force_include_selectors(force_include_selectors),
            username=username,
            password=password,
        )
        process = ProcessConfig(
            parallel_processes=parallel_processes if parallel_processes is not None else 1,
            poll_interval=poll_interval if poll_interval is not None else DEFAULT_POLL_INTERVAL,
            process_timeout=process_timeout,
        )
        return cls(
            output=OutputConfig(output_dir),
            critical=critical,
            process=process,
            enabled=enabled,
            clean_before_run=clean_before_run,
        )
