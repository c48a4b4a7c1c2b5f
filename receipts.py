"""
receipts.py - Receipt Foundation Module

Canonical emit_receipt() for every twostate module. ALL modules import from here.
This is the single source of truth for receipt emission and the fail-fast
StopRule exception.

Never single hash. Always dual_hash (SHA256:BLAKE3).
"""

import hashlib
import json
from datetime import datetime, timezone
from typing import Any, Dict, Iterable, List, Union

import blake3

__all__ = [
    "dual_hash",
    "emit_receipt",
    "write_receipt_jsonl",
    "write_ledger_jsonl",
    "StopRule",
    "merkle",
    "DEFAULT_TENANT",
]

# =============================================================================
# CONSTANTS
# =============================================================================

DEFAULT_TENANT = "twostate"


# =============================================================================
# CORE FUNCTION 1: dual_hash
# =============================================================================

def dual_hash(data: Union[bytes, str]) -> str:
    """
    SHA256:BLAKE3 - ALWAYS use this, never single hash.

    Args:
        data: Bytes or string to hash

    Returns:
        str: "sha256_hex:blake3_hex" format
    """
    if isinstance(data, str):
        data = data.encode()
    sha = hashlib.sha256(data).hexdigest()
    b3 = blake3.blake3(data).hexdigest()
    return f"{sha}:{b3}"


# =============================================================================
# CORE FUNCTION 2: emit_receipt
# =============================================================================

def emit_receipt(receipt_type: str, data: Dict[str, Any]) -> Dict[str, Any]:
    """
    Every state change calls this. No exceptions.

    Args:
        receipt_type: Type identifier for this receipt
        data: Receipt payload (tenant_id defaults to 'twostate')

    Returns:
        dict: Complete receipt with ts, tenant_id, payload_hash, and data fields
    """
    receipt = {
        "receipt_type": receipt_type,
        "ts": datetime.now(timezone.utc).isoformat(),
        "tenant_id": data.get("tenant_id", DEFAULT_TENANT),
        "payload_hash": dual_hash(json.dumps(data, sort_keys=True)),
        **data
    }
    return receipt


# =============================================================================
# CORE FUNCTION 3: write_receipt_jsonl
# =============================================================================

def write_receipt_jsonl(receipt: Dict[str, Any], fh) -> None:
    """
    Append receipt as single JSON line to file handle.

    Args:
        receipt: Receipt dict to write
        fh: File handle (must be open for writing)
    """
    line = json.dumps(receipt, separators=(",", ":"))
    fh.write(line + "\n")


def write_ledger_jsonl(receipts: Iterable[Dict[str, Any]], fh) -> int:
    """Write every receipt in a ledger, returning how many lines were written."""
    written = 0
    for receipt in receipts:
        write_receipt_jsonl(receipt, fh)
        written += 1
    return written


# =============================================================================
# CORE FUNCTION 4: merkle
# =============================================================================

def merkle(items: List[Any]) -> str:
    """
    Compute Merkle root of items.

    Args:
        items: List of items to merkle (will be JSON serialized)

    Returns:
        str: Merkle root hash in dual_hash format
    """
    if not items:
        return dual_hash(b"empty")
    hashes = [dual_hash(json.dumps(i, sort_keys=True)) for i in items]
    while len(hashes) > 1:
        if len(hashes) % 2:
            hashes.append(hashes[-1])
        hashes = [dual_hash(hashes[i] + hashes[i + 1])
                  for i in range(0, len(hashes), 2)]
    return hashes[0]


# =============================================================================
# STOPRULE EXCEPTION
# =============================================================================

class StopRule(Exception):
    """Raised when stoprule triggers. Never catch silently."""
    pass
