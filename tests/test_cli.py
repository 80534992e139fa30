"""Tests for the command-line tools."""

import json
import os
import sys

import pytest

from pec_monitoring import cli


def _scrape(requests: int, errors: int) -> str:
    return "\n".join(
        [
            f'app_api_requests_total{{method="GET",route="/x",status="200"}} {requests}',
            f'app_api_errors_total{{method="GET",route="/x",status_class="5xx"}} {errors}',
            "",
        ]
    )


def test_analyze_json(tmp_path, monkeypatch, capsys):
    """Captured scrapes become a JSON series with insights."""
    paths = []
    for index, (requests, errors) in enumerate([(100, 0), (160, 1), (260, 1)]):
        path = tmp_path / f"scrape{index}.txt"
        path.write_text(_scrape(requests, errors))
        paths.append(str(path))

    monkeypatch.setattr(sys, "argv", ["pec-metrics-analyze", *paths, "--interval", "60", "--json"])
    with pytest.raises(SystemExit) as exc_info:
        cli.analyze()

    assert exc_info.value.code == 0
    output = json.loads(capsys.readouterr().out)
    rates = [point["requests_per_min"] for point in output["series"]]
    assert rates[0] is None
    assert rates[1] == pytest.approx(60)
    assert rates[2] == pytest.approx(100)
    assert output["insights"][0]["id"] == "traffic"


def test_analyze_text_output(tmp_path, monkeypatch, capsys):
    """Plain output lists points and insights."""
    path = tmp_path / "scrape.txt"
    path.write_text(_scrape(10, 0))

    monkeypatch.setattr(sys, "argv", ["pec-metrics-analyze", str(path), "--interval", "60"])
    with pytest.raises(SystemExit) as exc_info:
        cli.analyze()

    out = capsys.readouterr().out
    assert exc_info.value.code == 0
    assert "1 points" in out
    assert "Insights:" in out


def test_analyze_fails_without_samples(tmp_path, monkeypatch, capsys):
    """Files without samples produce an error exit."""
    path = tmp_path / "empty.txt"
    path.write_text("# nothing here\n")

    monkeypatch.setattr(sys, "argv", ["pec-metrics-analyze", str(path), "--interval", "60"])
    with pytest.raises(SystemExit) as exc_info:
        cli.analyze()

    assert exc_info.value.code == 1
    assert "no usable snapshot" in capsys.readouterr().err


def test_analyze_missing_file(tmp_path, monkeypatch, capsys):
    """An unreadable file is reported on stderr."""
    monkeypatch.setattr(
        sys, "argv", ["pec-metrics-analyze", str(tmp_path / "missing.txt"), "--interval", "60"]
    )
    with pytest.raises(SystemExit) as exc_info:
        cli.analyze()

    assert exc_info.value.code == 1
    assert "Error:" in capsys.readouterr().err


def test_demo_prints_exposition(monkeypatch, capsys):
    """The demo run renders the instrumented workload."""
    monkeypatch.setattr(sys, "argv", ["pec-metrics-demo", "--requests", "3", "--errors", "1"])

    cli.demo()

    out = capsys.readouterr().out
    assert 'app_api_requests_total{method="GET",route="/api/demo",status="200"} 3.0' in out
    assert 'app_api_errors_total{method="GET",route="/api/demo",status_class="5xx"} 1.0' in out
    assert "metrics_endpoint_requests_total 1.0" in out


def test_analyze_warns_on_shared_modification_time(tmp_path, monkeypatch, capsys):
    """Files captured in the same instant are flagged instead of silently merged."""
    paths = []
    for index, requests in enumerate([100, 160]):
        path = tmp_path / f"scrape{index}.txt"
        path.write_text(_scrape(requests, 0))
        os.utime(path, (1_700_000_000, 1_700_000_000))
        paths.append(str(path))

    monkeypatch.setattr(sys, "argv", ["pec-metrics-analyze", *paths, "--json"])
    with pytest.raises(SystemExit) as exc_info:
        cli.analyze()

    captured = capsys.readouterr()
    assert exc_info.value.code == 0
    assert "share a capture time" in captured.err
    assert "--interval" in captured.err
    assert len(json.loads(captured.out)["series"]) == 1


def test_analyze_interval_avoids_shared_time_warning(tmp_path, monkeypatch, capsys):
    """Explicit spacing gives every file its own capture time."""
    paths = []
    for index, requests in enumerate([100, 160]):
        path = tmp_path / f"scrape{index}.txt"
        path.write_text(_scrape(requests, 0))
        os.utime(path, (1_700_000_000, 1_700_000_000))
        paths.append(str(path))

    monkeypatch.setattr(sys, "argv", ["pec-metrics-analyze", *paths, "--interval", "60"])
    with pytest.raises(SystemExit):
        cli.analyze()

    assert "share a capture time" not in capsys.readouterr().err
