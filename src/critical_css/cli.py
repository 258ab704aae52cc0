"""critical-css のコマンドラインインターフェース。"""

from __future__ import annotations

import argparse
import json
import logging
import sys
from pathlib import Path
from typing import Iterable

from .catalog import CatalogError, JsonCatalog
from .command import CriticalBinaryError
from .config import GeneratorConfig
from .env import current_tool_settings, load_env_file
from .generator import generate

SEPARATOR = "-----------------------------------------"


def _parse_store_ids(raw: str | None) -> list[int] | None:
    if not raw:
        return None
    ids = [int(chunk.strip()) for chunk in raw.split(",") if chunk.strip().isdigit()]
    return ids or None


def parse_args(argv: Iterable[str] | None = None) -> argparse.Namespace:
    parser = argparse.ArgumentParser(description="各ストアの代表ページからクリティカル CSS を生成します")
    parser.add_argument("--catalog", dest="catalog", type=Path, required=True, help="ストアとカタログを記述した JSON ファイル")
    parser.add_argument("--out", dest="output_dir", type=Path, required=True, help="生成した CSS とログを書き出すディレクトリ")
    parser.add_argument("--store-id", dest="store_ids", type=str, default=None, help="対象とするストア ID をカンマ区切りで指定 (例: 1,2)")
    parser.add_argument("--env-file", dest="env_file", type=Path, default=None, help="読み込む .env ファイル")
    parser.add_argument("--verbose", dest="verbose", action="store_true", help="進捗ログを標準出力へ表示")
    parser.add_argument("--debug", dest="debug", action="store_true", help="起動したコマンドライン (パスワードはマスク) も表示")

    critical_group = parser.add_argument_group("critical 設定")
    critical_group.add_argument("--binary", dest="binary", type=str, default=None, help="critical 実行ファイルのパス")
    critical_group.add_argument(
        "--dimensions",
        dest="dimensions",
        type=str,
        default=None,
        help="画面サイズをカンマ区切りで指定 (例: 375x812,1280x720)",
    )
    critical_group.add_argument(
        "--force-include",
        dest="force_include",
        action="append",
        default=None,
        help="常に含める CSS セレクタ (複数回指定可)",
    )
    critical_group.add_argument("--username", dest="username", type=str, default=None, help="HTTP Basic 認証のユーザー名")
    critical_group.add_argument("--password", dest="password", type=str, default=None, help="HTTP Basic 認証のパスワード")

    process_group = parser.add_argument_group("並列実行設定")
    process_group.add_argument(
        "--parallel",
        dest="parallel",
        type=int,
        default=None,
        help="同時に実行する critical プロセス数",
    )
    process_group.add_argument(
        "--timeout",
        dest="timeout",
        type=float,
        default=None,
        help="1 プロセスあたりのタイムアウト秒数 (省略時は無制限)",
    )
    process_group.add_argument(
        "--keep-existing",
        dest="keep_existing",
        action="store_true",
        help="実行前に既存のクリティカル CSS を削除しない",
    )
    return parser.parse_args(list(argv) if argv is not None else None)


def main(argv: Iterable[str] | None = None) -> int:
    args = parse_args(argv)
    _validate_args(args)
    load_env_file(args.env_file)
    _configure_logging(args.verbose, args.debug)
    settings = current_tool_settings()
    config = GeneratorConfig.from_args(
        args.output_dir,
        binary=args.binary or settings.binary,
        parallel_processes=args.parallel if args.parallel is not None else settings.parallel_processes,
        dimensions=args.dimensions,
        force_include_selectors=args.force_include,
        username=args.username or settings.username,
        password=args.password or settings.password,
        process_timeout=args.timeout,
        clean_before_run=not args.keep_existing,
        enabled=settings.enabled,
    )
    try:
        catalog = JsonCatalog.load(args.catalog)
    except CatalogError as exc:
        print(f"[エラー] {exc}", file=sys.stderr)
        return 1

    _display_configuration(config)
    try:
        result = generate(config, catalog, _parse_store_ids(args.store_ids))
    except CriticalBinaryError as exc:
        print(f"[エラー] {exc}", file=sys.stderr)
        return 1
    except OSError as exc:
        print(f"[エラー] 出力先への書き込みに失敗しました: {exc}", file=sys.stderr)
        return 1

    summary = {
        "jobs": result.jobs,
        "succeeded": len(result.succeeded),
        "failed": len(result.failed),
        "output": str(config.output.cache_dir),
    }
    print(json.dumps(summary, ensure_ascii=False))
    return 0


def _validate_args(args: argparse.Namespace) -> None:
    errors: list[str] = []
    if not args.catalog.exists():
        errors.append(f"[エラー] カタログファイルが見つかりません: {args.catalog}")
    elif not args.catalog.is_file():
        errors.append(f"[エラー] カタログパスはファイルではありません: {args.catalog}")

    if args.output_dir.exists() and not args.output_dir.is_dir():
        errors.append(f"[エラー] 出力パスがディレクトリではありません: {args.output_dir}")

    if args.parallel is not None and args.parallel < 1:
        errors.append("[エラー] --parallel には 1 以上の整数を指定してください。")
    if args.timeout is not None and args.timeout <= 0:
        errors.append("[エラー] --timeout には 0 より大きい数値を指定してください。")
    if args.env_file is not None and not args.env_file.exists():
        errors.append(f"[エラー] .env ファイルが見つかりません: {args.env_file}")

    if errors:
        for message in errors:
            print(message, file=sys.stderr)
        raise SystemExit(2)

    args.catalog = args.catalog.resolve()
    args.output_dir = args.output_dir.resolve()


def _display_configuration(config: GeneratorConfig) -> None:
    critical = config.critical
    print(SEPARATOR)
    print("critical 設定")
    print(SEPARATOR)
    print(f"クリティカル CSS の配信: {'有効' if config.enabled else '無効'}")
    print(f"実行ファイル: {critical.binary}")
    print(f"画面サイズ: {', '.join(critical.dimensions)}")
    print(f"強制的に含めるセレクタ: {', '.join(critical.force_include_selectors)}")
    if critical.username:
        print(f"HTTP 認証ユーザー名: {critical.username}")
        print(f"HTTP 認証パスワード: {'******' if critical.password else 'None'}")
    print(f"並列数: {config.process.parallel_processes}")
    print(SEPARATOR)


def _configure_logging(verbose: bool, debug: bool = False) -> None:
    if debug:
        level = logging.DEBUG
    elif verbose:
        level = logging.INFO
    else:
        level = logging.WARNING
    logging.basicConfig(level=level, format="%(asctime)s [%(levelname)s] %(message)s", datefmt="%Y-%m-%d %H:%M:%S")


if __name__ == "__main__":
    raise SystemExit(main())
