from __future__ import annotations

import logging
from pathlib import Path

import pytest

import image_task_queue.main as main_module
from image_task_queue.backend.simulated import SimulatedBackend


@pytest.fixture(autouse=True)
def _isolated(monkeypatch, tmp_path: Path):  # type: ignore[no-untyped-def]
    monkeypatch.chdir(tmp_path)
    root = logging.getLogger()
    saved_handlers, saved_level = list(root.handlers), root.level
    yield
    root.handlers[:] = saved_handlers
    root.setLevel(saved_level)


def test_invalid_configuration_exits_with_2(monkeypatch, capsys) -> None:
    monkeypatch.setenv("TASK_QUEUE_MAX_CONCURRENT", "0")

    assert main_module.main(["serve"]) == 2
    assert "Configuration error" in capsys.readouterr().err


def test_serve_runs_uvicorn_with_overrides(monkeypatch) -> None:
    calls: list[dict] = []

    def fake_run(app, **kwargs):  # type: ignore[no-untyped-def]
        calls.append({"app": app, **kwargs})

    monkeypatch.setattr(main_module.uvicorn, "run", fake_run)

    assert main_module.main(["serve", "--port", "9123", "--backend", "simulated"]) == 0

    assert len(calls) == 1
    assert calls[0]["host"] == "127.0.0.1"
    assert calls[0]["port"] == 9123
    assert calls[0]["log_config"] is None
    assert isinstance(calls[0]["app"].state.scheduler.backend, SimulatedBackend)


def test_serve_failure_exits_with_1(monkeypatch) -> None:
    def broken_run(app, **kwargs):  # type: ignore[no-untyped-def]
        raise OSError("address already in use")

    monkeypatch.setattr(main_module.uvicorn, "run", broken_run)

    assert main_module.main(["serve", "--backend", "simulated"]) == 1


def test_command_is_required() -> None:
    with pytest.raises(SystemExit):
        main_module.main([])
