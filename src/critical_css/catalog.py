"""スコープ (ストア) とカタログデータの読み出し口。

URL 生成は常に引数で渡されたスコープを基準に行い、グローバルな
「現在のストア」は持ちません。
"""

from __future__ import annotations

import json
import logging
from dataclasses import dataclass, field
from pathlib import Path
from typing import Any, Mapping, Protocol, Sequence
from urllib.parse import urlencode

from slugify import slugify

logger = logging.getLogger(__name__)

DISPLAY_MODE_PRODUCTS = "PRODUCTS"
DISPLAY_MODE_PAGE = "PAGE"
DISPLAY_MODE_PRODUCTS_AND_PAGE = "PRODUCTS_AND_PAGE"

DEFAULT_PAGE_LAYOUTS = ("empty", "1column", "2columns-left", "2columns-right", "3columns")
DEFAULT_URL_SUFFIX = ".html"


class CatalogError(RuntimeError):
    """カタログデータの取得に失敗した際に送出される例外。"""


@dataclass(frozen=True, slots=True)
class Scope:
    """URL やベースパスが独立して解決されるストア。"""

    code: str
    scope_id: int
    base_url: str
    is_active: bool = True
    name: str = ""

    def url(
        self,
        route: str = "",
        params: Mapping[str, Any] | None = None,
        query: Mapping[str, Any] | None = None,
    ) -> str:
        """ルートとパラメータからスコープ内の絶対 URL を組み立てます。"""

        base = self.base_url if self.base_url.endswith("/") else self.base_url + "/"
        path = route.strip("/")
        if path:
            path += "/"
        for key, value in (params or {}).items():
            path += f"{key}/{value}/"
        url = base + path
        if query:
            url += "?" + urlencode(dict(query))
        return url

    def page_url(self, url_key: str, suffix: str = DEFAULT_URL_SUFFIX) -> str:
        base = self.base_url if self.base_url.endswith("/") else self.base_url + "/"
        return f"{base}{url_key.strip('/')}{suffix}"


@dataclass(slots=True)
class Product:
    product_id: int
    type_id: str
    name: str = ""
    url_key: str = ""
    enabled: bool = True
    visible: bool = True
    scope_ids: tuple[int, ...] = ()

    def url(self, scope: Scope) -> str:
        return scope.page_url(self.url_key or slugify(self.name) or f"product-{self.product_id}")


@dataclass(slots=True)
class Category:
    category_id: int
    name: str = ""
    level: int = 2
    display_mode: str | None = None
    is_anchor: bool = False
    page_layout: str = ""
    custom_design: str = ""
    children_count: int = 0
    is_active: bool = True
    url_key: str = ""
    scope_ids: tuple[int, ...] = ()

    @property
    def is_product_listing(self) -> bool:
        return self.display_mode is None or self.display_mode == DISPLAY_MODE_PRODUCTS

    def url(self, scope: Scope) -> str:
        return scope.page_url(self.url_key or slugify(self.name) or f"category-{self.category_id}")


@dataclass(slots=True)
class SearchTerm:
    query_text: str
    popularity: int = 0
    scope_id: int | None = None


class Catalog(Protocol):
    """プロバイダーが参照するカタログデータ源の契約。"""

    def scopes(self) -> Sequence[Scope]: ...

    def products_by_type(self, scope: Scope, *, limit: int) -> Sequence[Product]: ...

    def categories(self, scope: Scope, *, product_listing: bool, limit: int) -> Sequence[Category]: ...

    def popular_search_term(self, scope: Scope) -> SearchTerm | None: ...

    def page_layouts(self) -> Sequence[str]: ...


@dataclass(slots=True)
class JsonCatalog:
    """JSON ファイル 1 つからスコープとカタログを読み込むアダプター。"""

    stores: list[Scope] = field(default_factory=list)
    product_items: list[Product] = field(default_factory=list)
    category_items: list[Category] = field(default_factory=list)
    search_terms: list[SearchTerm] = field(default_factory=list)
    layouts: tuple[str, ...] = DEFAULT_PAGE_LAYOUTS

    @classmethod
    def load(cls, path: Path) -> "JsonCatalog":
        try:
            payload = json.loads(Path(path).read_text(encoding="utf-8"))
        except (OSError, json.JSONDecodeError) as exc:
            raise CatalogError(f"カタログを読み込めませんでした: {path} ({exc})") from exc
        if not isinstance(payload, dict):
            raise CatalogError(f"カタログの最上位は JSON オブジェクトである必要があります: {path}")
        return cls.from_dict(payload)

    @classmethod
    def from_dict(cls, payload: Mapping[str, Any]) -> "JsonCatalog":
        try:
            stores = [
                Scope(
                    code=str(item["code"]),
                    scope_id=int(item["id"]),
                    base_url=str(item["base_url"]),
                    is_active=bool(item.get("active", True)),
                    name=str(item.get("name", "")),
                )
                for item in payload.get("stores", [])
            ]
            products = [
                Product(
                    product_id=int(item["id"]),
                    type_id=str(item.get("type_id", "simple")),
                    name=str(item.get("name", "")),
                    url_key=str(item.get("url_key", "")),
                    enabled=bool(item.get("enabled", True)),
                    visible=bool(item.get("visible", True)),
                    scope_ids=tuple(int(value) for value in item.get("store_ids", ())),
                )
                for item in payload.get("products", [])
            ]
            categories = [
                Category(
                    category_id=int(item["id"]),
                    name=str(item.get("name", "")),
                    level=int(item.get("level", 2)),
                    display_mode=item.get("display_mode"),
                    is_anchor=bool(item.get("is_anchor", False)),
                    page_layout=str(item.get("page_layout") or ""),
                    custom_design=str(item.get("custom_design") or ""),
                    children_count=int(item.get("children_count", 0)),
                    is_active=bool(item.get("active", True)),
                    url_key=str(item.get("url_key", "")),
                    scope_ids=tuple(int(value) for value in item.get("store_ids", ())),
                )
                for item in payload.get("categories", [])
            ]
            terms = [
                SearchTerm(
                    query_text=str(item["query_text"]),
                    popularity=int(item.get("popularity", 0)),
                    scope_id=int(item["store_id"]) if item.get("store_id") is not None else None,
                )
                for item in payload.get("search_terms", [])
            ]
        except (KeyError, TypeError, ValueError) as exc:
            raise CatalogError(f"カタログの形式が不正です: {exc}") from exc
        layouts = tuple(str(layout) for layout in payload.get("page_layouts", DEFAULT_PAGE_LAYOUTS))
        return cls(
            stores=stores,
            product_items=products,
            category_items=categories,
            search_terms=terms,
            layouts=layouts,
        )

    def scopes(self) -> Sequence[Scope]:
        return list(self.stores)

    def products_by_type(self, scope: Scope, *, limit: int) -> Sequence[Product]:
        """商品タイプごとに最初の 1 件だけを返します。"""

        grouped: dict[str, Product] = {}
        for product in self.product_items:
            if len(grouped) >= limit:
                break
            if not product.enabled or not product.visible:
                continue
            if product.scope_ids and scope.scope_id not in product.scope_ids:
                continue
            grouped.setdefault(product.type_id, product)
        return list(grouped.values())

    def categories(self, scope: Scope, *, product_listing: bool, limit: int) -> Sequence[Category]:
        candidates = [
            category
            for category in self.category_items
            if category.is_active
            and category.level > 1
            and category.is_product_listing == product_listing
            and (not category.scope_ids or scope.scope_id in category.scope_ids)
        ]
        if product_listing:
            # 子カテゴリの多い主要カテゴリから順に代表を選ぶ
            candidates.sort(key=lambda category: (-category.children_count, category.level))
        return candidates[:limit]

    def popular_search_term(self, scope: Scope) -> SearchTerm | None:
        terms = [
            term
            for term in self.search_terms
            if term.query_text and (term.scope_id is None or term.scope_id == scope.scope_id)
        ]
        if not terms:
            return None
        return max(terms, key=lambda term: term.popularity)

    def page_layouts(self) -> Sequence[str]:
        return list(self.layouts)
