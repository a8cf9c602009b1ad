from __future__ import annotations

import os
import urllib.error
import urllib.request
from uuid import uuid4

import pytest

from src.adapters.persistence.dynamodb_detour_repository import DynamoDbDetourRepository


def _localstack_healthy(endpoint_url: str) -> bool:
    url = endpoint_url.rstrip("/") + "/_localstack/health"
    try:
        with urllib.request.urlopen(url, timeout=1.5) as resp:  # nosec B310
            return 200 <= resp.status < 300
    except (urllib.error.URLError, OSError):
        return False


@pytest.fixture(scope="session", autouse=True)
def localstack_env() -> None:
    """Point boto3 at LocalStack unless the environment already says otherwise."""

    os.environ.setdefault("USE_LOCALSTACK", "true")
    os.environ.setdefault("ENDPOINT_URL", "http://localhost:4566")
    os.environ.setdefault("AWS_REGION", "eu-west-1")

    # boto3 refuses to sign requests without credentials, even fake ones.
    os.environ.setdefault("AWS_ACCESS_KEY_ID", "test")
    os.environ.setdefault("AWS_SECRET_ACCESS_KEY", "test")


@pytest.fixture(scope="session")
def require_localstack(localstack_env: None) -> str:
    endpoint_url = os.environ.get("ENDPOINT_URL", "http://localhost:4566")
    if not _localstack_healthy(endpoint_url):
        msg = f"LocalStack not reachable at {endpoint_url}"
        # CI starts LocalStack, so a missing one there is a real failure.
        if os.getenv("CI") or os.getenv("REQUIRE_LOCALSTACK"):
            pytest.fail(msg, pytrace=False)
        pytest.skip(f"{msg}; skipping integration tests")
    return endpoint_url


@pytest.fixture
def detour_repository(require_localstack: str) -> DynamoDbDetourRepository:
    """Repository bound to freshly created, uniquely named tables."""

    suffix = uuid4().hex[:8]
    repo = DynamoDbDetourRepository(
        table_name=f"routewatch-test-detours-{suffix}",
        history_table_name=f"routewatch-test-detour-history-{suffix}",
    )
    repo.ensure_tables()
    return repo
