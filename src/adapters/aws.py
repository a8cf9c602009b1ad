from __future__ import annotations

import logging
import os
from dataclasses import dataclass
from typing import TYPE_CHECKING

import boto3
from botocore.client import BaseClient

if TYPE_CHECKING:
    from mypy_boto3_dynamodb import DynamoDBClient
else:
    DynamoDBClient = BaseClient  # type: ignore[misc,assignment]

logger = logging.getLogger(__name__)

_TRUTHY = frozenset({"1", "true", "yes", "y", "on"})


def env_bool(name: str, default: bool = False) -> bool:
    raw = os.getenv(name)
    if raw is None or not raw.strip():
        return default
    return raw.strip().lower() in _TRUTHY


@dataclass(frozen=True, slots=True)
class AwsRuntimeConfig:
    """Where boto3 should point.

    Env vars:
      - ENDPOINT_URL: explicit endpoint (LocalStack or a VPC endpoint)
      - USE_LOCALSTACK / LOCALSTACK_ENDPOINT_URL: fallback LocalStack endpoint
      - AWS_REGION (default: eu-west-1)
      - DETOUR_CREATE_TABLES: create missing detour tables at startup
    """

    region: str
    endpoint_url: str | None
    use_localstack: bool
    create_tables: bool

    @staticmethod
    def from_env() -> "AwsRuntimeConfig":
        endpoint_url = (os.getenv("ENDPOINT_URL") or "").strip() or None
        use_localstack = env_bool("USE_LOCALSTACK", False)
        return AwsRuntimeConfig(
            region=os.getenv("AWS_REGION", "eu-west-1"),
            endpoint_url=endpoint_url,
            use_localstack=use_localstack,
            create_tables=env_bool("DETOUR_CREATE_TABLES", use_localstack),
        )

    def resolved_endpoint_url(self) -> str | None:
        if self.endpoint_url:
            return self.endpoint_url
        if self.use_localstack:
            return os.getenv("LOCALSTACK_ENDPOINT_URL", "http://localhost:4566")
        return None


def dynamodb_client(cfg: AwsRuntimeConfig | None = None) -> DynamoDBClient:
    cfg = cfg or AwsRuntimeConfig.from_env()
    session = boto3.session.Session(region_name=cfg.region)
    return session.client("dynamodb", endpoint_url=cfg.resolved_endpoint_url())


def ensure_dynamodb_table(table_name: str, hash_key: str) -> bool:
    """Create an on-demand table keyed by a string hash key if it is missing.

    Returns True if the table was created.
    """

    ddb = dynamodb_client()
    existing: set[str] = set()
    kwargs: dict[str, str] = {}
    while True:
        resp = ddb.list_tables(**kwargs)
        existing.update(resp.get("TableNames", []))
        last = resp.get("LastEvaluatedTableName")
        if not last:
            break
        kwargs["ExclusiveStartTableName"] = last

    if table_name in existing:
        return False

    ddb.create_table(
        TableName=table_name,
        BillingMode="PAY_PER_REQUEST",
        AttributeDefinitions=[{"AttributeName": hash_key, "AttributeType": "S"}],
        KeySchema=[{"AttributeName": hash_key, "KeyType": "HASH"}],
    )
    ddb.get_waiter("table_exists").wait(TableName=table_name)
    logger.info("Created DynamoDB table %s", table_name)
    return True
