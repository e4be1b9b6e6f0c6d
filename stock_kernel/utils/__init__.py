"""Stock kernel utilities."""

from stock_kernel.utils.hashing import canonicalize_json, hash_audit_event, hash_payload

__all__ = ["canonicalize_json", "hash_audit_event", "hash_payload"]
