"""Tests for the netbox-enrich CLI."""

from __future__ import annotations

import io
import json
from datetime import timedelta
from pathlib import Path
from unittest.mock import Mock

import pytest
import requests

from netboxprocessor.cli import enrich_tags
from netboxprocessor.enrichment.cache import NetboxDeviceCache
from netboxprocessor.metric import Metric
from netboxprocessor.processor import NetboxProcessor
from netboxprocessor.settings import ProcessorSettings
from tests.fixtures.netbox_fixtures import SJC_DEVICE, SJC_SITE, US_WEST, FakeClock, FakeSession, resolved

CONFIG = """
[netbox]
netbox_addr = "netbox.example.com"
netbox_token = "00abcd007"
preserve_original = false

[netbox.transforms]
ip-to-device = ["source-address", "destination-address"]
"""


def _lines(*records: dict) -> str:
    return "".join(json.dumps(record) + "\n" for record in records)


def test_read_metrics_skips_blank_and_invalid_lines(caplog: pytest.LogCaptureFixture) -> None:
    lines = ['{"name": "flows", "tags": {"a": "b"}}\n', "\n", "not json\n", '{"tags": {}}\n']

    metrics = list(enrich_tags.read_metrics(lines))

    assert metrics == [Metric(name="flows", tags={"a": "b"})]
    assert "line 3" in caplog.text
    assert "line 4" in caplog.text


def test_enrich_stream_batches(clock: FakeClock) -> None:
    resolver = Mock()
    resolver.resolve.return_value = resolved(SJC_DEVICE, SJC_SITE, US_WEST, resolved_at=clock.current)
    cache = NetboxDeviceCache(resolver, timedelta(hours=4), now=clock)
    settings = ProcessorSettings(preserve_original=True, transforms={"ip-to-device": ["source-address"]})
    processor = NetboxProcessor(settings, cache=cache)
    source = io.StringIO(_lines(*({"name": "flows", "tags": {"source-address": "141.193.3.5"}} for _ in range(5))))
    sink = io.StringIO()

    count = enrich_tags.enrich_stream(processor, source, sink, batch_size=2)

    assert count == 5
    output = [json.loads(line) for line in sink.getvalue().splitlines()]
    assert len(output) == 5
    assert all(record["tags"]["source-site"] == "sjc1" for record in output)
    resolver.resolve.assert_called_once_with("141.193.3.5")
    assert processor.stats['metrics'] == 5


def test_main_end_to_end(
    tmp_path: Path, fake_session: FakeSession, monkeypatch: pytest.MonkeyPatch, capsys: pytest.CaptureFixture
) -> None:
    monkeypatch.setattr(requests, "Session", lambda: fake_session)
    config_file = tmp_path / "netbox.toml"
    config_file.write_text(CONFIG, encoding="utf-8")
    input_file = tmp_path / "in.jsonl"
    input_file.write_text(
        _lines(
            {
                "name": "flows",
                "tags": {"source-address": "141.193.3.5", "destination-address": "12.100.16.2"},
                "fields": {"bytes": 1500},
                "timestamp": 1700000000,
            },
            {"name": "interfaces", "tags": {"device": "foo"}, "fields": {"in_octets": 10}},
        ),
        encoding="utf-8",
    )
    output_file = tmp_path / "out.jsonl"

    exit_code = enrich_tags.main(
        ["--config", str(config_file), "--input", str(input_file), "--output", str(output_file), "--stats"]
    )

    assert exit_code == 0
    first, second = [json.loads(line) for line in output_file.read_text(encoding="utf-8").splitlines()]
    assert first["tags"] == {
        "source-device": "br1-sjc1",
        "source-site": "sjc1",
        "source-region": "US_WEST",
        "destination-device": "br1-iad1",
        "destination-site": "ash1",
        "destination-region": "US_EAST",
    }
    assert first["timestamp"] == 1700000000
    assert second["tags"] == {"device": "foo"}
    err = capsys.readouterr().err
    assert '"tags_transformed": 2' in err
    assert '"tags_removed": 2' in err


def test_main_missing_config_file(tmp_path: Path) -> None:
    assert enrich_tags.main(["--config", str(tmp_path / "absent.toml")]) == 2


def test_main_invalid_config_file(tmp_path: Path) -> None:
    config_file = tmp_path / "netbox.toml"
    config_file.write_text("[netbox\n", encoding="utf-8")

    assert enrich_tags.main(["--config", str(config_file)]) == 2


def test_main_rejects_non_positive_batch_size() -> None:
    with pytest.raises(SystemExit):
        enrich_tags.main(["--batch-size", "0"])


def test_main_missing_input_file(tmp_path: Path, caplog: pytest.LogCaptureFixture) -> None:
    config_file = tmp_path / "netbox.toml"
    config_file.write_text(CONFIG, encoding="utf-8")
    missing = tmp_path / "absent.jsonl"

    exit_code = enrich_tags.main(["--config", str(config_file), "--input", str(missing)])

    assert exit_code == 2
    assert f"Unable to open {missing}" in caplog.text


def test_main_unwritable_output(tmp_path: Path, caplog: pytest.LogCaptureFixture) -> None:
    config_file = tmp_path / "netbox.toml"
    config_file.write_text(CONFIG, encoding="utf-8")
    input_file = tmp_path / "in.jsonl"
    input_file.write_text(_lines({"name": "flows", "tags": {"source-address": "141.193.3.5"}}), encoding="utf-8")
    output_file = tmp_path / "no-such-dir" / "out.jsonl"

    exit_code = enrich_tags.main(
        ["--config", str(config_file), "--input", str(input_file), "--output", str(output_file)]
    )

    assert exit_code == 2
    assert f"Unable to open {output_file}" in caplog.text
    assert not output_file.parent.exists()
