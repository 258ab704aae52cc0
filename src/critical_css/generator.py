"""スコープ列挙・ジョブ作成・並列実行をまとめるオーケストレーター。"""

from __future__ import annotations

import json
import logging
from dataclasses import dataclass
from typing import Any, Iterable

from .catalog import Catalog
from .command import VersionRunner, check_binary
from .config import GeneratorConfig
from .container import ProviderContainer
from .process import ProcessFactory
from .providers import default_providers
from .scheduler import ExecutionReport, JobResult, ProcessManager
from .storage import CriticalCssStorage


@dataclass(slots=True)
class GenerationResult:
    jobs: int
    succeeded: list[JobResult]
    failed: list[JobResult]
    critical_version: str

    @property
    def artifacts(self) -> int:
        return len(self.succeeded)


class CriticalCssGenerator:
    """事前チェック・URL 収集・CSS 生成を順に実行する高レベルパイプライン。"""

    def __init__(
        self,
        config: GeneratorConfig,
        catalog: Catalog,
        *,
        container: ProviderContainer | None = None,
        process_factory: ProcessFactory | None = None,
        version_runner: VersionRunner | None = None,
    ) -> None:
        self.config = config
        self.catalog = catalog
        self.container = container if container is not None else ProviderContainer(default_providers(catalog))
        self.storage = CriticalCssStorage(config.output.root)
        self.manager = ProcessManager(
            config,
            catalog,
            self.container,
            self.storage,
            process_factory=process_factory,
        )
        self._version_runner = version_runner
        self._logger = logging.getLogger(self.__class__.__module__ + "." + self.__class__.__name__)
        self._summary_base = {
            "output_dir": str(config.output.root),
            "created_at": config.created_at.isoformat(),
        }
        self._summary_path = config.output.logs_dir / "generate_summary.json"
        self._completed = 0
        self._failed = 0

    def run(self, scope_ids: Iterable[int] | None = None) -> GenerationResult:
        """生成処理を実行します。``critical`` が使えない場合は何も起動せずに例外を送出します。"""

        critical = self.config.critical
        version = check_binary(critical.binary, critical.minimum_version, self._version_runner)
        self._prepare_logging_resources()
        self._update_summary("preflight", critical_version=version)

        self._logger.info("URL を収集しています...")
        contexts = self.manager.create_processes(scope_ids)
        total = len(contexts)
        self._update_summary("discovered", jobs=total)
        if not contexts:
            self._logger.warning("処理対象の URL が見つかりませんでした。")
            self._update_summary("completed", jobs=0, succeeded=0, failed=0)
            return GenerationResult(jobs=0, succeeded=[], failed=[], critical_version=version)

        self._logger.info("%d 件の URL についてクリティカル CSS を生成します。", total)
        self._completed = 0
        self._failed = 0
        report = self.manager.execute_processes(
            contexts,
            delete_old_files=self.config.clean_before_run,
            on_result=lambda result: self._report_progress(result, total),
        )
        self._log_report(report)
        self._update_summary(
            "completed",
            jobs=total,
            succeeded=len(report.succeeded),
            failed=len(report.failed),
            failed_jobs=[f"{r.scope_code}:{r.provider}|{r.identifier}" for r in report.failed],
        )
        return GenerationResult(
            jobs=total,
            succeeded=report.succeeded,
            failed=report.failed,
            critical_version=version,
        )

    def _log_report(self, report: ExecutionReport) -> None:
        self._logger.info(
            "生成が完了しました (成功 %d 件 / 失敗 %d 件)。",
            len(report.succeeded),
            len(report.failed),
        )
        if report.failed:
            samples = ", ".join(f"{r.provider}|{r.identifier}" for r in report.failed[:3])
            self._logger.warning("失敗したジョブが %d 件あります。サンプル: %s", len(report.failed), samples)

    def _report_progress(self, result: JobResult, total: int) -> None:
        self._completed += 1
        if not result.succeeded:
            self._failed += 1
        extra: dict[str, Any] = {
            "jobs": total,
            "finished": self._completed,
            "failed": self._failed,
            "last_job": f"{result.scope_code}:{result.provider}|{result.identifier}",
        }
        if result.error:
            extra["last_error"] = result.error
        self._update_summary("generating", **extra)

    def _prepare_logging_resources(self) -> None:
        self.config.output.logs_dir.mkdir(parents=True, exist_ok=True)
        self._summary_path.write_text("", encoding="utf-8")

    def _update_summary(self, stage: str, **extra: Any) -> None:
        payload = dict(self._summary_base)
        payload.update(extra)
        payload["stage"] = stage
        self._summary_path.parent.mkdir(parents=True, exist_ok=True)
        with self._summary_path.open("a", encoding="utf-8") as stream:
            stream.write(json.dumps(payload, ensure_ascii=False))
            stream.write("\n")


def generate(
    config: GeneratorConfig,
    catalog: Catalog,
    scope_ids: Iterable[int] | None = None,
) -> GenerationResult:
    generator = CriticalCssGenerator(config, catalog)
    return generator.run(scope_ids)
