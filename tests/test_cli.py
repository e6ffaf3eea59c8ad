"""CLI parser and command behaviour tests."""

from __future__ import annotations

import json
from pathlib import Path

import pytest

from orgdeps.cli import _build_parser, main

_ENV_KEYS = (
    "ORGDEPS_ORG",
    "GITHUB_ORG",
    "ORGDEPS_TOKEN",
    "GITHUB_TOKEN",
    "ORGDEPS_INTERNAL_PREFIX",
)


@pytest.fixture(autouse=True)
def _clean_environment(monkeypatch: pytest.MonkeyPatch) -> None:
    for key in _ENV_KEYS:
        monkeypatch.delenv(key, raising=False)


def _write_config(root: Path, body: str) -> None:
    (root / ".orgdeps.yml").write_text(body, encoding="utf-8")


def test_cli_accepts_verbose_before_command() -> None:
    parser = _build_parser()
    args = parser.parse_args(["--verbose", "graph"])
    assert args.verbose is True
    assert args.command == "graph"


def test_cli_accepts_verbose_after_command() -> None:
    parser = _build_parser()
    args = parser.parse_args(["graph", "--verbose"])
    assert args.verbose is True
    assert args.command == "graph"


def test_cli_scan_flags() -> None:
    parser = _build_parser()
    args = parser.parse_args(
        [
            "scan",
            "svc-a",
            "svc-b",
            "--org",
            "acme",
            "--max-depth",
            "3",
            "--concurrency",
            "4",
            "--batch-size",
            "25",
            "--batch-pause",
            "5",
        ]
    )
    assert args.command == "scan"
    assert args.repositories == ["svc-a", "svc-b"]
    assert args.org == "acme"
    assert args.max_depth == 3
    assert args.concurrency == 4
    assert args.batch_size == 25
    assert args.batch_pause == 5.0


def test_cli_reset_cache_flag() -> None:
    args = _build_parser().parse_args(["reset", "--cache"])
    assert args.command == "reset"
    assert args.cache is True


def test_graph_command_writes_output(tmp_path: Path, capsys: pytest.CaptureFixture[str]) -> None:
    _write_config(tmp_path, "internal_prefix: '@org/'\n")
    progress = tmp_path / ".orgdeps" / "progress.json"
    progress.parent.mkdir()
    progress.write_text(json.dumps({"svcA": ["@org/libX", "left-pad"]}), encoding="utf-8")

    main(["graph", "--config", str(tmp_path)])

    output = tmp_path / "dependencies.json"
    written = json.loads(output.read_text(encoding="utf-8"))
    assert [node["id"] for node in written["nodes"]] == ["svcA", "@org/libX"]
    assert "Graph with 2 nodes and 1 links" in capsys.readouterr().out


def test_graph_command_honours_output_flag(tmp_path: Path) -> None:
    _write_config(tmp_path, "internal_prefix: '@org/'\n")
    target = tmp_path / "out" / "graph.json"

    main(["graph", "--config", str(tmp_path), "--output", str(target)])

    assert json.loads(target.read_text(encoding="utf-8")) == {"nodes": [], "links": []}


def test_graph_command_without_prefix_exits(tmp_path: Path) -> None:
    with pytest.raises(SystemExit) as excinfo:
        main(["graph", "--config", str(tmp_path)])
    assert excinfo.value.code == 1


def test_scan_without_organization_exits(tmp_path: Path) -> None:
    _write_config(tmp_path, "internal_prefix: '@org/'\n")

    with pytest.raises(SystemExit) as excinfo:
        main(["scan", "--config", str(tmp_path)])
    assert excinfo.value.code == 1


def test_invalid_configuration_exits(tmp_path: Path) -> None:
    _write_config(tmp_path, "scan: [broken")

    with pytest.raises(SystemExit) as excinfo:
        main(["graph", "--config", str(tmp_path)])
    assert excinfo.value.code == 1


def test_out_of_range_flag_exits_cleanly(
    tmp_path: Path, capsys: pytest.CaptureFixture[str]
) -> None:
    with pytest.raises(SystemExit) as excinfo:
        main(["scan", "--org", "acme", "--concurrency", "0", "--config", str(tmp_path)])

    assert excinfo.value.code == 1
    assert "scan.concurrency must be at least 1" in capsys.readouterr().err


def test_reset_command_clears_progress(tmp_path: Path, capsys: pytest.CaptureFixture[str]) -> None:
    progress = tmp_path / ".orgdeps" / "progress.json"
    progress.parent.mkdir()
    progress.write_text(json.dumps({"svcA": []}), encoding="utf-8")

    main(["reset", "--config", str(tmp_path)])

    assert json.loads(progress.read_text(encoding="utf-8")) == {}
    assert "Scan progress cleared" in capsys.readouterr().out
