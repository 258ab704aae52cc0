"""クリティカル CSS 生成ジョブの作成と並列実行を管理するスケジューラー。"""

from __future__ import annotations

import logging
import time
from collections import deque
from dataclasses import dataclass, field
from typing import Callable, Iterable, Sequence

from .catalog import Catalog, CatalogError, Scope
from .command import bust_cache, build_command, sanitize_command
from .config import GeneratorConfig
from .container import ProviderContainer
from .css import CssProcessor
from .process import ExternalProcess, ProcessContext, ProcessFactory
from .providers import Provider
from .storage import CriticalCssStorage


@dataclass(slots=True)
class JobResult:
    """終了したジョブ 1 件の結果。"""

    scope_code: str
    provider: str
    identifier: str
    cache_key: str
    url: str
    size: int | None = None
    error: str | None = None

    @property
    def succeeded(self) -> bool:
        return self.error is None

    @classmethod
    def for_context(cls, context: ProcessContext, **extra: object) -> "JobResult":
        return cls(
            scope_code=context.scope.code,
            provider=context.provider.name,
            identifier=context.identifier,
            cache_key=context.cache_key,
            url=context.url,
            **extra,  # type: ignore[arg-type]
        )


@dataclass(slots=True)
class ExecutionReport:
    total: int = 0
    succeeded: list[JobResult] = field(default_factory=list)
    failed: list[JobResult] = field(default_factory=list)
    max_running: int = 0


ResultCallback = Callable[[JobResult], None]


class ProcessManager:
    """外部プロセスを常に最大 ``parallel_processes`` 件まで並列に実行します。

    空いた枠はすぐに待機キューから補充し、1 件の失敗が他のジョブや
    ループ全体を止めることはありません。
    """

    def __init__(
        self,
        config: GeneratorConfig,
        catalog: Catalog,
        container: ProviderContainer,
        storage: CriticalCssStorage,
        *,
        css_processor: CssProcessor | None = None,
        process_factory: ProcessFactory | None = None,
        sleep: Callable[[float], None] = time.sleep,
        clock: Callable[[], float] = time.time,
        logger: logging.Logger | None = None,
    ) -> None:
        self._config = config
        self._catalog = catalog
        self._container = container
        self._storage = storage
        self._css_processor = css_processor or CssProcessor()
        self._process_factory = process_factory or ExternalProcess
        self._sleep = sleep
        self._clock = clock
        self._logger = logger or logging.getLogger(f"{__name__}.{self.__class__.__name__}")

    # Discovery ---------------------------------------------------------

    def create_processes(self, scope_ids: Iterable[int] | None = None) -> list[ProcessContext]:
        """有効なスコープごとに、全プロバイダーからジョブを作成します。"""

        wanted = set(scope_ids) if scope_ids is not None else None
        contexts: list[ProcessContext] = []
        for scope in self._catalog.scopes():
            if wanted is not None and scope.scope_id not in wanted:
                continue
            if not scope.is_active:
                self._logger.debug("無効なスコープをスキップします: %s", scope.code)
                continue
            for provider in self._container.providers():
                if not provider.is_available():
                    continue
                contexts.extend(self.create_processes_for_provider(provider, scope))
        return contexts

    def create_processes_for_provider(self, provider: Provider, scope: Scope) -> list[ProcessContext]:
        try:
            urls = provider.urls(scope)
        except CatalogError as exc:
            self._logger.warning("[%s:%s] URL の取得に失敗したためスキップします: %s", scope.code, provider.name, exc)
            return []

        critical = self._config.critical
        timestamp = int(self._clock())
        contexts: list[ProcessContext] = []
        for identifier, url in urls.items():
            target = bust_cache(url, timestamp)
            self._logger.info("[%s:%s|%s] - %s", scope.code, provider.name, identifier, target)
            command = build_command(
                target,
                critical.dimensions,
                critical.force_include_selectors,
                critical.binary,
                critical.username,
                critical.password,
            )
            contexts.append(
                ProcessContext(
                    provider=provider,
                    scope=scope,
                    identifier=identifier,
                    url=target,
                    process=self._process_factory(command),
                )
            )
        return contexts

    # Execution ---------------------------------------------------------

    def execute_processes(
        self,
        contexts: Sequence[ProcessContext],
        delete_old_files: bool = False,
        on_result: ResultCallback | None = None,
    ) -> ExecutionReport:
        """ジョブを順に起動し、全件が終了するまでポーリングします。"""

        if delete_old_files:
            self._storage.clean()

        pending: deque[ProcessContext] = deque(contexts)
        running: list[ProcessContext] = []
        report = ExecutionReport(total=len(pending))
        batch_size = self._config.process.parallel_processes

        def record(result: JobResult) -> None:
            (report.succeeded if result.succeeded else report.failed).append(result)
            if on_result is None:
                return
            try:
                on_result(result)
            except Exception:
                # 進捗通知の失敗で他のジョブを止めない
                self._logger.exception(
                    "[%s:%s|%s] 結果の通知に失敗しました。",
                    result.scope_code,
                    result.provider,
                    result.identifier,
                )

        def fill() -> None:
            while pending and len(running) < batch_size:
                context = pending.popleft()
                if self._start_process(context, record):
                    running.append(context)
            report.max_running = max(report.max_running, len(running))

        try:
            fill()
            while running:
                for context in list(running):
                    if context.process.is_running():
                        if not self._is_timed_out(context):
                            continue
                        self._kill_timed_out(context, record)
                    else:
                        record(self._handle_ended_process(context))
                    running.remove(context)
                    context.process.close()
                    fill()
                if running:
                    self._sleep(self._config.process.poll_interval)
        finally:
            for context in running:
                self._logger.warning("%s 実行中のプロセスを終了します。", context.label)
                context.process.kill()
                context.process.close()
        return report

    def _start_process(self, context: ProcessContext, record: ResultCallback) -> bool:
        process = context.process
        try:
            process.start()
        except OSError as exc:
            self._logger.error("%s プロセスを起動できませんでした: %s", context.label, exc)
            record(JobResult.for_context(context, error=f"start failed: {exc}"))
            return False
        self._logger.debug(
            "[%s|%s] > %s",
            context.provider.name,
            context.identifier,
            sanitize_command(process.command),
        )
        return True

    def _handle_ended_process(self, context: ProcessContext) -> JobResult:
        process = context.process
        if not process.is_successful():
            stderr = process.error_output().strip()
            self._logger.error(
                "%s 生成に失敗しました (exit=%s): %s\n%s",
                context.label,
                process.exit_code,
                sanitize_command(process.command),
                stderr,
            )
            return JobResult.for_context(context, error=f"exit code {process.exit_code}: {stderr}".strip())

        css = self._css_processor.process(context.scope.base_url, process.output())
        key = context.cache_key
        try:
            self._storage.save(key, css)
        except OSError as exc:
            self._logger.error("%s クリティカル CSS を保存できませんでした: %s", context.label, exc)
            return JobResult.for_context(context, error=f"save failed: {exc}")

        size = self._storage.size_of(key)
        self._logger.info(
            "%s 完了: %s.css (%s bytes)",
            context.label,
            key,
            size if size is not None else "?",
        )
        return JobResult.for_context(context, size=size)

    def _is_timed_out(self, context: ProcessContext) -> bool:
        timeout = self._config.process.process_timeout
        return timeout is not None and context.process.elapsed() > timeout

    def _kill_timed_out(self, context: ProcessContext, record: ResultCallback) -> None:
        timeout = self._config.process.process_timeout
        self._logger.error("%s %.1f 秒を超えたためプロセスを終了します。", context.label, timeout)
        context.process.kill()
        record(JobResult.for_context(context, error=f"timed out after {timeout}s"))
