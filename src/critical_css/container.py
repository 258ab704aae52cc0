"""プロバイダーを優先度順・名前引きで管理するレジストリ。"""

from __future__ import annotations

from typing import Iterable, Iterator

from .providers import Provider


class ProviderContainer:
    """名前で一意なプロバイダーの集合。

    反復順は優先度の降順で、同じ優先度のものは名前の昇順に並べます。
    同名のプロバイダーを登録すると後から登録したものに置き換わります。
    """

    def __init__(self, providers: Iterable[Provider] = ()) -> None:
        self._providers: dict[str, Provider] = {}
        self._sorted: list[Provider] | None = None
        for provider in providers:
            self.register(provider)

    def register(self, provider: Provider) -> None:
        self._providers[provider.name] = provider
        self._sorted = None

    def providers(self) -> list[Provider]:
        if self._sorted is None:
            self._sorted = sorted(
                self._providers.values(),
                key=lambda provider: (-provider.priority, provider.name),
            )
        return list(self._sorted)

    def get(self, name: str) -> Provider | None:
        return self._providers.get(name)

    def __iter__(self) -> Iterator[Provider]:
        return iter(self.providers())

    def __len__(self) -> int:
        return len(self._providers)

    def __contains__(self, name: object) -> bool:
        return name in self._providers
