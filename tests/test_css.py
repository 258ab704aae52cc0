from __future__ import annotations

import pytest

from critical_css.css import CssProcessor, resolve_absolute_path


def test_process_rewrites_relative_static_path() -> None:
    raw = "body{background:url(../../pub/static/frontend/Theme/en_US/img/bg.png)}"

    processed = CssProcessor().process("https://shop.example/", raw)

    assert processed == "body{background:url(https://shop.example/pub/static/frontend/Theme/en_US/img/bg.png)}"


@pytest.mark.parametrize(
    ("path", "expected"),
    [
        ("../static/version1/frontend/a.woff2", "https://shop.example/static/version1/frontend/a.woff2"),
        ("/static/frontend/b.png", "https://shop.example/static/frontend/b.png"),
        ("../../../pub/static/c.svg", "https://shop.example/pub/static/c.svg"),
        ("../images/local.png", "../images/local.png"),
    ],
)
def test_resolve_absolute_path(path: str, expected: str) -> None:
    assert resolve_absolute_path(path, "https://shop.example/") == expected


def test_base_url_without_trailing_slash() -> None:
    assert resolve_absolute_path("static/a.png", "https://shop.example") == "https://shop.example/static/a.png"


def test_process_keeps_quotes_and_skips_absolute_urls() -> None:
    raw = (
        ".a{background:url('../static/a.png')}"
        '.b{background:url("https://cdn.example/b.png")}'
        ".c{background:url(data:image/png;base64,AAAA)}"
        ".d{background:url(//cdn.example/static/d.png)}"
    )

    processed = CssProcessor().process("https://shop.example/", raw)

    assert ".a{background:url('https://shop.example/static/a.png')}" in processed
    assert 'url("https://cdn.example/b.png")' in processed
    assert "url(data:image/png;base64,AAAA)" in processed
    assert "url(//cdn.example/static/d.png)" in processed


def test_process_rewrites_import_statements() -> None:
    raw = '@import "../pub/static/frontend/print.css";'

    processed = CssProcessor().process("https://shop.example/", raw)

    assert processed == '@import "https://shop.example/pub/static/frontend/print.css";'
