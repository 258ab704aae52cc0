from __future__ import annotations

import json
import sys
from pathlib import Path
from typing import Sequence

import pytest

from critical_css.catalog import JsonCatalog, Scope
from critical_css.command import CriticalBinaryError
from critical_css.config import GeneratorConfig, OutputConfig, ProcessConfig
from critical_css.container import ProviderContainer
from critical_css.generator import CriticalCssGenerator
from critical_css.process import ExternalProcess
from critical_css.providers import CmsPageProvider, ContactProvider, CustomerProvider
from critical_css.storage import CriticalCssStorage

SCOPE = Scope(code="default", scope_id=1, base_url="https://shop.example/")
SCRIPT = """
import sys
url = sys.argv[1]
if "forgotpassword" in url:
    sys.stderr.write("timeout while loading page")
    sys.exit(1)
print(".page{background:url(../static/frontend/bg.png)}")
"""


def _python_factory(command: Sequence[str]) -> ExternalProcess:
    # critical の代わりに Python スクリプトへ URL を渡す
    return ExternalProcess([sys.executable, "-c", SCRIPT, command[1]])


def _generator(tmp_path: Path, **kwargs) -> CriticalCssGenerator:
    config = GeneratorConfig(
        output=OutputConfig(tmp_path / "output"),
        process=ProcessConfig(parallel_processes=2, poll_interval=0.01),
    )
    return CriticalCssGenerator(
        config,
        JsonCatalog(stores=[SCOPE]),
        container=ProviderContainer([CmsPageProvider(), ContactProvider(), CustomerProvider()]),
        process_factory=_python_factory,
        **kwargs,
    )


def test_run_generates_artifacts_and_summary(tmp_path: Path) -> None:
    generator = _generator(tmp_path, version_runner=lambda command: "2.0.6")
    generator.storage.save("stale", "old{}")

    result = generator.run()

    assert result.jobs == 5
    assert result.artifacts == 4
    assert [job.identifier for job in result.failed] == ["customer_account_forgotpassword"]
    assert "timeout while loading page" in (result.failed[0].error or "")
    assert result.critical_version == "2.0.6"

    storage = generator.storage
    assert storage.read("stale") is None
    for job in result.succeeded:
        assert storage.read(job.cache_key) == ".page{background:url(https://shop.example/static/frontend/bg.png)}\n"

    summary_path = tmp_path / "output" / "logs" / "generate_summary.json"
    events = [json.loads(line) for line in summary_path.read_text(encoding="utf-8").splitlines() if line.strip()]
    assert events[0]["stage"] == "preflight"
    assert events[-1]["stage"] == "completed"
    assert events[-1]["succeeded"] == 4
    assert events[-1]["failed_jobs"] == ["default:customer|customer_account_forgotpassword"]
    assert sum(1 for event in events if event["stage"] == "generating") == 5


def test_preflight_failure_spawns_nothing(tmp_path: Path) -> None:
    started: list[Sequence[str]] = []

    def factory(command: Sequence[str]) -> ExternalProcess:
        started.append(command)
        return _python_factory(command)

    config = GeneratorConfig(output=OutputConfig(tmp_path))
    generator = CriticalCssGenerator(
        config,
        JsonCatalog(stores=[SCOPE]),
        container=ProviderContainer([CmsPageProvider()]),
        process_factory=factory,
        version_runner=lambda command: "1.0.0",
    )
    CriticalCssStorage(tmp_path).save("kept", "a{}")

    with pytest.raises(CriticalBinaryError):
        generator.run()

    assert started == []
    assert CriticalCssStorage(tmp_path).read("kept") == "a{}"


def test_run_without_urls_reports_zero_jobs(tmp_path: Path) -> None:
    config = GeneratorConfig(output=OutputConfig(tmp_path))
    generator = CriticalCssGenerator(
        config,
        JsonCatalog(stores=[Scope(code="off", scope_id=9, base_url="https://x/", is_active=False)]),
        version_runner=lambda command: "2.1.0",
    )

    result = generator.run()

    assert result.jobs == 0
    assert result.artifacts == 0


def test_default_container_registers_every_provider(tmp_path: Path) -> None:
    generator = CriticalCssGenerator(GeneratorConfig(output=OutputConfig(tmp_path)), JsonCatalog())

    assert [provider.name for provider in generator.container.providers()] == [
        "category",
        "product",
        "catalogsearch",
        "contact",
        "customer",
        "cms_page",
        "default",
    ]
