"""Request building for the lock table."""

from __future__ import annotations

import enum
from collections.abc import Iterable, Mapping
from typing import Any

DEFAULT_PARTITION_KEY_NAME = "key"


class BillingMode(str, enum.Enum):
    """How the table's capacity is billed."""

    PAY_PER_REQUEST = "PAY_PER_REQUEST"
    PROVISIONED = "PROVISIONED"


def build_create_table_input(
    table_name: str,
    partition_key_name: str = DEFAULT_PARTITION_KEY_NAME,
    provisioned_throughput: Mapping[str, Any] | None = None,
    tags: Iterable[Mapping[str, Any]] | None = None,
) -> dict[str, Any]:
    """Build a CreateTable request for a table usable as a lock store.

    Giving ``provisioned_throughput`` switches the table to provisioned billing;
    otherwise it is billed per request.
    """
    billing_mode = (
        BillingMode.PAY_PER_REQUEST
        if provisioned_throughput is None
        else BillingMode.PROVISIONED
    )
    request: dict[str, Any] = {
        "TableName": table_name,
        "KeySchema": [{"AttributeName": partition_key_name, "KeyType": "HASH"}],
        "BillingMode": billing_mode.value,
        "AttributeDefinitions": [
            {"AttributeName": partition_key_name, "AttributeType": "S"}
        ],
    }
    if provisioned_throughput is not None:
        request["ProvisionedThroughput"] = dict(provisioned_throughput)
    if tags is not None:
        request["Tags"] = [dict(tag) for tag in tags]
    return request