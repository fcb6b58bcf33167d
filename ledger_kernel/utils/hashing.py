"""
Deterministic hashing utilities.

Audit records form a per-organization hash chain. Every hash in the chain is
computed from a canonical JSON rendering so the same data always produces
the same digest, whichever database produced the row.
"""

import hashlib
import json
from datetime import date, datetime
from decimal import Decimal
from typing import Any
from uuid import UUID

GENESIS = "GENESIS"


def plain_decimal(value: Decimal) -> str:
    """Render a Decimal without exponent and without trailing zeros."""
    text = format(value.normalize(), "f")
    return "0" if text in ("-0", "") else text


def _json_serializer(obj: Any) -> Any:
    """
    Custom JSON serializer for types not natively supported.

    Raises:
        TypeError: If object type is not supported.
    """
    if isinstance(obj, Decimal):
        return plain_decimal(obj)
    if isinstance(obj, (datetime, date)):
        return obj.isoformat()
    if isinstance(obj, UUID):
        return str(obj)
    if isinstance(obj, bytes):
        return obj.hex()

    raise TypeError(f"Object of type {type(obj).__name__} is not JSON serializable")


def canonicalize_json(data: dict | list | Any) -> str:
    """
    Convert data to canonical JSON string.

    Keys are sorted, there is no whitespace, and Decimal, date, datetime and
    UUID values are rendered consistently.
    """
    return json.dumps(
        data,
        sort_keys=True,
        separators=(",", ":"),
        default=_json_serializer,
    )


def to_json_ready(data: Any) -> Any:
    """Round-trip ``data`` through canonical JSON so it can live in a JSON column."""
    return json.loads(canonicalize_json(data))


def hash_payload(payload: dict) -> str:
    """Hex-encoded SHA-256 of the canonical JSON form of ``payload``."""
    canonical = canonicalize_json(payload)
    return hashlib.sha256(canonical.encode("utf-8")).hexdigest()


def hash_audit_record(
    organization_id: str,
    seq: int,
    table_name: str,
    record_id: str,
    operation: str,
    payload_hash: str,
    prev_hash: str | None,
) -> str:
    """
    Compute the chained hash for an audit record.

    The hash covers the record's identity, its position in the organization's
    chain and the previous record's hash, so altering, removing or reordering
    any record breaks every hash after it.
    """
    components = [
        str(organization_id),
        str(seq),
        table_name,
        str(record_id),
        operation,
        payload_hash,
        prev_hash or GENESIS,
    ]
    data = "|".join(components)
    return hashlib.sha256(data.encode("utf-8")).hexdigest()
