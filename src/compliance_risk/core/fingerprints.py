from __future__ import annotations

import hashlib
import json
from typing import Any, Dict, Mapping


def stable_serialize(obj: Any) -> str:
    return json.dumps(obj, sort_keys=True, separators=(",", ":"), ensure_ascii=False, default=str)


def hash_object(obj: Any) -> str:
    serialized = stable_serialize(obj)
    return hashlib.sha256(serialized.encode("utf-8")).hexdigest()


def build_fingerprints(
    facts: Mapping[str, Any],
    policy: Dict[str, Any],
    policy_version: str = "",
) -> Dict[str, str]:
    return {
        "input_hash": hash_object(dict(facts)),
        "config_hash": hash_object(policy),
        "policy_version": policy_version or "",
    }
