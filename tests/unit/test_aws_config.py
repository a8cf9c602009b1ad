from __future__ import annotations

import pytest

from src.adapters.aws import AwsRuntimeConfig, env_bool

_VARS = (
    "ENDPOINT_URL",
    "USE_LOCALSTACK",
    "LOCALSTACK_ENDPOINT_URL",
    "AWS_REGION",
    "DETOUR_CREATE_TABLES",
)


@pytest.fixture(autouse=True)
def _clean_env(monkeypatch) -> None:
    for name in _VARS:
        monkeypatch.delenv(name, raising=False)


@pytest.mark.parametrize(
    ("raw", "expected"),
    [("1", True), (" Yes ", True), ("on", True), ("0", False), ("nope", False), ("", True)],
)
def test_env_bool(monkeypatch, raw: str, expected: bool) -> None:
    monkeypatch.setenv("FLAG", raw)
    # Blank values fall back to the default.
    assert env_bool("FLAG", True) is expected


def test_plain_aws_by_default() -> None:
    cfg = AwsRuntimeConfig.from_env()

    assert cfg.region == "eu-west-1"
    assert cfg.resolved_endpoint_url() is None
    assert cfg.create_tables is False


def test_localstack_endpoint_and_table_creation(monkeypatch) -> None:
    monkeypatch.setenv("USE_LOCALSTACK", "true")

    cfg = AwsRuntimeConfig.from_env()
    assert cfg.resolved_endpoint_url() == "http://localhost:4566"
    assert cfg.create_tables is True

    monkeypatch.setenv("ENDPOINT_URL", " http://ls:4566 ")
    monkeypatch.setenv("DETOUR_CREATE_TABLES", "false")
    cfg = AwsRuntimeConfig.from_env()
    assert cfg.resolved_endpoint_url() == "http://ls:4566"
    assert cfg.create_tables is False
