"""Audit trail: per-round IAT labels and the session ledger."""

from gotme.audit.ledger import LOCAL_ONLY, generate_ledger, write_ledger
from gotme.audit.signature import generate_signature, rolling_hash, verify_signature_hash

__all__ = [
    "LOCAL_ONLY",
    "generate_ledger",
    "write_ledger",
    "generate_signature",
    "rolling_hash",
    "verify_signature_hash",
]
