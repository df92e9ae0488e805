from __future__ import annotations

import boto3
from botocore.config import Config


def botocore_config(*, connect_timeout: float = 2, read_timeout: float = 10) -> Config:
    # botocore retries are off; the app-layer RetryPolicy in retry.py decides whether
    # a throttled page or chunk is attempted again.
    return Config(
        retries={"total_max_attempts": 1, "mode": "standard"},
        connect_timeout=connect_timeout,
        read_timeout=read_timeout,
    )


def dynamodb_resource(
    *,
    region: str,
    config: Config | None = None,
    session: boto3.session.Session | None = None,
):
    # One resource per caller; transfers against different regions never share a handle.
    sess = session or boto3.session.Session()
    return sess.resource(
        "dynamodb",
        region_name=region,
        config=config or botocore_config(),
    )


def close_resource(resource) -> None:
    client = getattr(getattr(resource, "meta", None), "client", None)
    close = getattr(client, "close", None)
    if callable(close):
        close()
