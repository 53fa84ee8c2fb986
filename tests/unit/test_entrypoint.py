"""CLIのテスト"""
import argparse
import json
from pathlib import Path
from unittest.mock import patch

import pytest

from postcode_geocoder import entrypoint
from postcode_geocoder.features.geocoding.domain.models import GeocodingConfig, GeoInput
from postcode_geocoder.features.geocoding.services.geocoding_service import GeocodingService
from postcode_geocoder.features.storage.repositories.memory_coordinate_repository import (
    InMemoryCoordinateRepository,
)
from postcode_geocoder.shared.exceptions.errors import ConfigurationError


@pytest.fixture(autouse=True)
def no_logging_setup():
    """ルートロガーの設定を変えない"""
    with patch.object(entrypoint, "setup_logging") as setup:
        yield setup


@pytest.fixture
def fake_service(fake_provider):
    config = GeocodingConfig(rate_limit_per_second=1000, retry_backoff_ms=1)
    service = GeocodingService(fake_provider, InMemoryCoordinateRepository(), config)
    with patch.object(GeocodingService, "from_settings", return_value=service) as factory:
        yield factory


@pytest.mark.parametrize(
    "raw,expected",
    [
        ("SW1A 1AA=1000", GeoInput("SW1A 1AA", 1000)),
        ("SW1A 1AA=12.5", GeoInput("SW1A 1AA", 12.5)),
        ("M1 1AE", GeoInput("M1 1AE", 0)),
    ],
)
def test_parse_postcode_arg(raw: str, expected: GeoInput) -> None:
    assert entrypoint.parse_postcode_arg(raw) == expected


def test_parse_postcode_arg_invalid_value() -> None:
    with pytest.raises(argparse.ArgumentTypeError):
        entrypoint.parse_postcode_arg("SW1A 1AA=lots")


def test_read_csv_inputs(tmp_path: Path) -> None:
    """postcode,value 列を読み、数値でない値は0"""
    path = tmp_path / "leads.csv"
    path.write_text("postcode,value\nSW1A 1AA,1000\nM1 1AE,abc\nB33 8TH,\n", encoding="utf-8")

    assert entrypoint.read_csv_inputs(path) == [
        GeoInput("SW1A 1AA", 1000.0),
        GeoInput("M1 1AE", 0),
        GeoInput("B33 8TH", 0),
    ]


def test_main_prints_outcome(fake_service, capsys: pytest.CaptureFixture[str]) -> None:
    """結果をJSONで出力し、1件以上成功なら0"""
    exit_code = entrypoint.main(["SW1A 1AA=1000", "--env-file", "nonexistent.env"])

    assert exit_code == 0
    output = json.loads(capsys.readouterr().out)
    assert output["results"] == [
        {"postcode": "SW1A 1AA", "latitude": 51.5014, "longitude": -0.1419, "value": 1000}
    ]


def test_main_all_failed(fake_service, capsys: pytest.CaptureFixture[str]) -> None:
    """全件失敗なら1"""
    exit_code = entrypoint.main(["ZZ9 9ZZ=1", "--env-file", "nonexistent.env"])

    assert exit_code == 1
    assert json.loads(capsys.readouterr().out)["success"] is False


def test_main_reads_csv(fake_service, tmp_path: Path, capsys: pytest.CaptureFixture[str]) -> None:
    path = tmp_path / "leads.csv"
    path.write_text("postcode,value\nsw1a1aa,5\n", encoding="utf-8")

    assert entrypoint.main(["--csv", str(path), "--env-file", "nonexistent.env"]) == 0
    assert json.loads(capsys.readouterr().out)["results"][0]["value"] == 5


def test_main_requires_input() -> None:
    """入力がなければ argparse のエラー"""
    with pytest.raises(SystemExit) as exc_info:
        entrypoint.main([])
    assert exc_info.value.code == 2


def test_main_configuration_error() -> None:
    """設定エラーは2"""
    with patch.object(
        GeocodingService, "from_settings", side_effect=ConfigurationError("bad")
    ):
        assert entrypoint.main(["SW1A 1AA", "--env-file", "nonexistent.env"]) == 2
