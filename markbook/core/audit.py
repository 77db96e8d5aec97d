"""
Hash chaining for the mark history.

Every entry of a subject's ``modified`` list stores the hash of its predecessor, so
editing or removing an entry in place breaks the chain.
"""

import hashlib
import json
from typing import Any, Dict, Iterable

GENESIS_HASH = "0" * 64


def compute_entry_hash(payload: Dict[str, Any], prev_hash: str) -> str:
    h = hashlib.sha256()
    h.update(json.dumps({
        "payload": payload,
        "prev_hash": prev_hash
    }, sort_keys=True, default=str).encode())
    return h.hexdigest()


def verify_chain(entries: Iterable[Any]) -> bool:
    """Check that each entry links to its predecessor and that no hash was forged.

    Entries must expose ``payload()``, ``prev_hash`` and ``hash``.
    """
    expected_prev = GENESIS_HASH
    for entry in entries:
        if entry.prev_hash != expected_prev:
            return False
        if compute_entry_hash(entry.payload(), entry.prev_hash) != entry.hash:
            return False
        expected_prev = entry.hash
    return True
