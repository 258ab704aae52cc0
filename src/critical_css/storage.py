"""生成したクリティカル CSS をファイルとして保存するストレージ。"""

from __future__ import annotations

import logging
import shutil
from pathlib import Path

logger = logging.getLogger(__name__)

DIRECTORY = "critical-css"
SUFFIX = ".css"


class CriticalCssStorage:
    """キャッシュキーごとに ``<root>/critical-css/<key>.css`` を読み書きします。"""

    def __init__(self, root: Path) -> None:
        self._root = Path(root)

    @property
    def directory(self) -> Path:
        return self._root / DIRECTORY

    def clean(self) -> None:
        """保存済みの成果物をディレクトリごと削除します。存在しなくてもエラーにしません。"""

        if self.directory.exists():
            shutil.rmtree(self.directory)
            logger.info("既存のクリティカル CSS を削除しました: %s", self.directory)

    def save(self, key: str, content: str | None) -> Path:
        self.directory.mkdir(parents=True, exist_ok=True)
        path = self.path_for(key)
        path.write_text(content or "", encoding="utf-8")
        return path

    def read(self, key: str) -> str | None:
        path = self.path_for(key)
        try:
            return path.read_text(encoding="utf-8")
        except FileNotFoundError:
            return None
        except (OSError, UnicodeDecodeError):
            logger.warning("クリティカル CSS を読み込めませんでした: %s", path, exc_info=True)
            return None

    def size_of(self, key: str) -> int | None:
        try:
            return self.path_for(key).stat().st_size
        except OSError:
            return None

    def path_for(self, key: str) -> Path:
        return self.directory / f"{key}{SUFFIX}"
