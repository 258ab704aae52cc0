"""配信時にリクエストへ対応するクリティカル CSS を探すリゾルバー。"""

from __future__ import annotations

import logging

from .catalog import Scope
from .config import GeneratorConfig
from .container import ProviderContainer
from .identifier import generate_identifier
from .providers import LayoutContext, PageRequest
from .storage import CriticalCssStorage

logger = logging.getLogger(__name__)


class CriticalCssResolver:
    """優先度の高いプロバイダーから順に問い合わせ、最初に見つかった CSS を返します。

    リクエストを担当すると答えたプロバイダーでも、保存済みの CSS が空 (または未生成)
    であれば次のプロバイダーへ進みます。
    """

    def __init__(self, container: ProviderContainer, storage: CriticalCssStorage, enabled: bool = True) -> None:
        self._container = container
        self._storage = storage
        self._enabled = enabled

    @classmethod
    def from_config(cls, config: GeneratorConfig, container: ProviderContainer) -> "CriticalCssResolver":
        """生成時と同じ出力先と有効/無効設定でリゾルバーを作成します。"""

        return cls(container, CriticalCssStorage(config.output.root), enabled=config.enabled)

    @property
    def enabled(self) -> bool:
        return self._enabled

    def resolve(self, scope: Scope | None, request: PageRequest, layout: LayoutContext) -> str:
        if not self._enabled or scope is None:
            return ""
        for provider in self._container.providers():
            identifier = provider.identifier_for_request(request, layout)
            if not identifier:
                continue
            key = generate_identifier(provider.name, scope.code, identifier)
            content = self._storage.read(key)
            if content:
                logger.debug("[%s:%s|%s] %s.css を使用します。", scope.code, provider.name, identifier, key)
                return content
        return ""
