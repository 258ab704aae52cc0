"""クリティカル CSS を生成する URL を列挙し、リクエストを識別子へ逆引きするプロバイダー群。"""

from __future__ import annotations

import abc
import logging
import sys
from dataclasses import dataclass, field
from typing import Mapping, Sequence

from .catalog import Catalog, CatalogError, Category, Product, Scope

logger = logging.getLogger(__name__)

LOWEST_PRIORITY = -sys.maxsize - 1


@dataclass(frozen=True, slots=True)
class PageRequest:
    """配信時に分類対象となるリクエスト。

    ``full_action_name`` は ``<module>_<controller>_<action>`` 形式
    (例: ``catalog_product_view``)。
    """

    full_action_name: str
    params: Mapping[str, str] = field(default_factory=dict)

    @property
    def module_name(self) -> str:
        return self.full_action_name.split("_", 1)[0]


@dataclass(frozen=True, slots=True)
class LayoutContext:
    """リクエスト処理中のレイアウト情報と表示対象エンティティ。"""

    page_layout: str | None = None
    current_product: Product | None = None
    current_category: Category | None = None


class Provider(abc.ABC):
    """URL の列挙 (生成時) とリクエスト分類 (配信時) を担うプロバイダーの契約。

    ``urls`` が返す識別子と、同じページへのリクエストに対して
    ``identifier_for_request`` が返す識別子は必ず一致させてください。
    """

    name: str = ""
    priority: int = 0

    def is_available(self) -> bool:
        return True

    @abc.abstractmethod
    def urls(self, scope: Scope) -> dict[str, str]:
        """ローカル識別子 → URL の対応を返します。"""

    @abc.abstractmethod
    def identifier_for_request(self, request: PageRequest, layout: LayoutContext) -> str | None:
        """このプロバイダーが担当するリクエストであればローカル識別子を返します。"""

    def __repr__(self) -> str:
        return f"{self.__class__.__name__}(name={self.name!r}, priority={self.priority})"


class _ActionProvider(Provider):
    """固定のアクション名をそのまま識別子に用いるプロバイダーの共通実装。"""

    module: str = ""
    routes: Mapping[str, str] = {}

    def urls(self, scope: Scope) -> dict[str, str]:
        return {action: scope.url(route) for action, route in self.routes.items()}

    def identifier_for_request(self, request: PageRequest, layout: LayoutContext) -> str | None:
        if request.module_name != self.module:
            return None
        action = request.full_action_name
        return action if action in self.routes else None


class CmsPageProvider(_ActionProvider):
    """CMS ページ用。現在はトップページのみを対象とします。"""

    name = "cms_page"
    priority = 1000
    module = "cms"
    routes = {"cms_index_index": ""}


class CustomerProvider(_ActionProvider):
    """ログイン・会員登録・パスワード再設定ページ用。"""

    name = "customer"
    priority = 1100
    module = "customer"
    routes = {
        "customer_account_login": "customer/account/login",
        "customer_account_create": "customer/account/create",
        "customer_account_forgotpassword": "customer/account/forgotpassword",
    }


class ContactProvider(_ActionProvider):
    name = "contact"
    priority = 1200
    module = "contact"
    routes = {"contact_index_index": "contact"}


class CatalogSearchProvider(Provider):
    """検索結果・詳細検索・人気キーワードページ用。"""

    name = "catalogsearch"
    priority = 1300
    supported_actions = (
        "catalogsearch_advanced_index",
        "catalogsearch_result_index",
        "search_term_popular",
    )

    def __init__(self, catalog: Catalog) -> None:
        self._catalog = catalog

    def urls(self, scope: Scope) -> dict[str, str]:
        urls = {
            "catalogsearch_advanced_index": scope.url("catalogsearch/advanced"),
            "search_term_popular": scope.url("search/term/popular"),
        }
        try:
            term = self._catalog.popular_search_term(scope)
        except CatalogError:
            logger.debug("人気検索キーワードを取得できませんでした (%s)", scope.code, exc_info=True)
            term = None
        if term is not None and term.query_text:
            urls["catalogsearch_result_index"] = scope.url(
                "catalogsearch/result", query={"q": term.query_text}
            )
        return urls

    def identifier_for_request(self, request: PageRequest, layout: LayoutContext) -> str | None:
        if request.module_name not in {"catalogsearch", "search"}:
            return None
        action = request.full_action_name
        return action if action in self.supported_actions else None


class ProductProvider(Provider):
    """商品タイプ (simple / configurable など) ごとに代表商品を 1 件選びます。"""

    name = "product"
    priority = 1400
    collection_limit = 20

    def __init__(self, catalog: Catalog) -> None:
        self._catalog = catalog

    def urls(self, scope: Scope) -> dict[str, str]:
        urls: dict[str, str] = {}
        for product in self._catalog.products_by_type(scope, limit=self.collection_limit):
            urls.setdefault(product.type_id, product.url(scope))
        return urls

    def identifier_for_request(self, request: PageRequest, layout: LayoutContext) -> str | None:
        if request.full_action_name != "catalog_product_view":
            return None
        if layout.current_product is None:
            return None
        return layout.current_product.type_id


class CategoryProvider(Provider):
    """カテゴリページ用。

    商品一覧カテゴリはレイアウトに影響する属性の組み合わせ単位で、
    ランディングページ (静的ブロック表示) はカテゴリ ID 単位で代表を選びます。
    """

    name = "category"
    priority = 1500
    collection_limit = 500

    def __init__(self, catalog: Catalog) -> None:
        self._catalog = catalog

    def urls(self, scope: Scope) -> dict[str, str]:
        urls: dict[str, str] = {}
        self._collect_product_listing_urls(scope, urls)
        self._collect_landing_page_urls(scope, urls)
        return urls

    def _collect_product_listing_urls(self, scope: Scope, urls: dict[str, str]) -> None:
        try:
            categories = self._catalog.categories(scope, product_listing=True, limit=self.collection_limit)
        except CatalogError:
            logger.debug("商品一覧カテゴリを取得できませんでした (%s)", scope.code, exc_info=True)
            return
        for category in categories:
            urls.setdefault(
                self.identifier_for(category),
                scope.url("catalog/category/view", params={"id": category.category_id}),
            )

    def _collect_landing_page_urls(self, scope: Scope, urls: dict[str, str]) -> None:
        try:
            categories = self._catalog.categories(scope, product_listing=False, limit=self.collection_limit)
        except CatalogError:
            logger.debug("ランディングカテゴリを取得できませんでした (%s)", scope.code, exc_info=True)
            return
        for category in categories:
            urls.setdefault(self.identifier_for(category), category.url(scope))

    def identifier_for_request(self, request: PageRequest, layout: LayoutContext) -> str | None:
        if request.full_action_name != "catalog_category_view":
            return None
        if layout.current_category is None:
            return None
        return self.identifier_for(layout.current_category)

    @staticmethod
    def identifier_for(category: Category) -> str:
        if not category.is_product_listing:
            return str(category.category_id)
        return "is_anchor:{:d},page_layout:{},custom_design:{}".format(
            int(category.is_anchor),
            category.page_layout,
            category.custom_design,
        )


class DefaultProvider(Provider):
    """ページレイアウト単位の汎用 CSS を生成するフォールバック。

    優先度は最小で、他のどのプロバイダーも一致しなかった場合に
    ページレイアウト名でリクエストを分類します。
    """

    name = "default"
    priority = LOWEST_PRIORITY
    route = "critical_css/page/layout"

    def __init__(self, catalog: Catalog) -> None:
        self._catalog = catalog

    def urls(self, scope: Scope) -> dict[str, str]:
        return {
            layout: scope.url(self.route, params={"page_layout": layout})
            for layout in self._catalog.page_layouts()
        }

    def identifier_for_request(self, request: PageRequest, layout: LayoutContext) -> str | None:
        return layout.page_layout or None


def default_providers(catalog: Catalog) -> Sequence[Provider]:
    """標準で登録するプロバイダー一式を返します。"""

    return (
        CategoryProvider(catalog),
        ProductProvider(catalog),
        CatalogSearchProvider(catalog),
        ContactProvider(),
        CustomerProvider(),
        CmsPageProvider(),
        DefaultProvider(catalog),
    )
