"""クリティカル CSS のキャッシュキーを生成するユーティリティ。"""

from __future__ import annotations

import hashlib


def unique_identifier(provider_name: str, scope_code: str, identifier: str) -> str:
    """ハッシュ化前の識別子 ``[SCOPE]PROVIDER_IDENTIFIER`` を組み立てます。"""

    return f"[{scope_code}]{provider_name}_{identifier}"


def generate_identifier(provider_name: str, scope_code: str, identifier: str) -> str:
    """プロバイダー・スコープ・ローカル識別子からキャッシュキーを生成します。

    生成されるキーは MD5 の 16 進表現 (32 文字) で、保存時のファイル名と
    配信時の検索キーの両方に使われます。
    """

    raw = unique_identifier(provider_name, scope_code, identifier)
    return hashlib.md5(raw.encode("utf-8")).hexdigest()
