"""生成された CSS 内の相対アセットパスを絶対 URL へ書き換える後処理。"""

from __future__ import annotations

import re
from typing import Callable

# ../ の連続に続く static / pub/static 配下のパス
RELATIVE_ASSET_PATTERN = re.compile(r"(\.\./)*(static|/static|/pub/static)/(.+)$", re.IGNORECASE)

_URL_PATTERN = re.compile(r"""url\(\s*(?P<quote>['"]?)(?P<path>[^'")]*?)(?P=quote)\s*\)""", re.IGNORECASE)
_IMPORT_PATTERN = re.compile(r"""@import\s+(?P<quote>['"])(?P<path>[^'"]+)(?P=quote)""", re.IGNORECASE)
_SCHEME_PATTERN = re.compile(r"^(?:[a-z][a-z0-9+.\-]*:|//|#)", re.IGNORECASE)


def resolve_absolute_path(path: str, base_url: str) -> str:
    """静的アセットを指すパスであれば ``base_url`` を起点とした絶対 URL を返します。"""

    match = RELATIVE_ASSET_PATTERN.search(path)
    if match is None:
        return path
    anchor = match.group(2)
    asset = match.group(3)
    return _with_trailing_slash(base_url) + f"{anchor}/{asset}".lstrip("/")


def replace_relative_urls(css: str, callback: Callable[[str], str]) -> str:
    """``url(...)`` と ``@import`` の参照先のうち相対パスだけを ``callback`` で置換します。"""

    def replace_url(match: re.Match[str]) -> str:
        path = match.group("path").strip()
        if not path or _SCHEME_PATTERN.match(path):
            return match.group(0)
        quote = match.group("quote")
        return f"url({quote}{callback(path)}{quote})"

    def replace_import(match: re.Match[str]) -> str:
        path = match.group("path").strip()
        if _SCHEME_PATTERN.match(path):
            return match.group(0)
        quote = match.group("quote")
        return f"@import {quote}{callback(path)}{quote}"

    css = _URL_PATTERN.sub(replace_url, css)
    return _IMPORT_PATTERN.sub(replace_import, css)


class CssProcessor:
    """インライン化される CSS 内の画像・フォント参照を絶対 URL に揃えます。"""

    def process(self, base_url: str, css: str) -> str:
        return replace_relative_urls(css, lambda path: resolve_absolute_path(path, base_url))


def _with_trailing_slash(url: str) -> str:
    return url if url.endswith("/") else url + "/"
