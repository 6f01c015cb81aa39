from __future__ import annotations

import json
import logging
import math
from dataclasses import dataclass, field
from pathlib import Path
from typing import Any, Dict, List, Optional, Tuple

from compliance_risk.core.errors import ConfigurationError

logger = logging.getLogger(__name__)

DEFAULT_POLICY_PATH = Path(__file__).resolve().parents[1] / "policies" / "default_policy.json"

FACTOR_KINDS = ("boolean", "checklist", "linear", "ladder", "lookup")

# Sample values used to check description templates at load time.
_TEMPLATE_SAMPLES: Dict[str, Dict[str, Any]] = {
    "boolean": {"value": "yes"},
    "checklist": {"met": 1, "total": 2, "missing": "sample"},
    "linear": {"value": 1.0},
    "ladder": {"value": 1.0},
    "lookup": {"value": "sample"},
}


@dataclass(frozen=True)
class RiskThresholds:
    low: float = 80.0
    medium: float = 60.0
    high: float = 40.0


@dataclass(frozen=True)
class FactorSpec:
    name: str
    kind: str
    facts: Tuple[str, ...]
    max_score: float
    remediation_threshold: float
    recommendation: str
    description: str
    absent_description: str
    required: bool = False
    floor_score: float = 0.0
    params: Dict[str, Any] = field(default_factory=dict)


@dataclass(frozen=True)
class CategorySpec:
    name: str
    factors: Tuple[FactorSpec, ...]
    weights: Optional[Dict[str, float]] = None


@dataclass(frozen=True)
class EntityProfile:
    entity_type: str
    label: str
    categories: Tuple[CategorySpec, ...]

    def required_facts(self) -> List[str]:
        out: List[str] = []
        for c in self.categories:
            for f in c.factors:
                if f.required:
                    out.extend(x for x in f.facts if x not in out)
        return out


@dataclass(frozen=True)
class ScoringPolicy:
    raw: Dict[str, Any]

    @property
    def policy_version(self) -> str:
        return str(self.raw.get("policy_version", "v0"))

    def thresholds(self) -> RiskThresholds:
        levels = self.raw.get("risk_levels") or {}
        return RiskThresholds(
            low=float(levels.get("low", 80.0)),
            medium=float(levels.get("medium", 60.0)),
            high=float(levels.get("high", 40.0)),
        )

    def entity_types(self) -> List[str]:
        return sorted(self.raw["entity_types"].keys())

    def has_profile(self, entity_type: str) -> bool:
        return entity_type in self.raw["entity_types"]

    def profile(self, entity_type: str) -> EntityProfile:
        entry = self.raw["entity_types"][entity_type]
        return EntityProfile(
            entity_type=entity_type,
            label=str(entry.get("label", entity_type)),
            categories=tuple(_parse_category(c) for c in entry["categories"]),
        )

    def profiles(self) -> Dict[str, EntityProfile]:
        return {t: self.profile(t) for t in self.entity_types()}


def _parse_factor(raw: Dict[str, Any]) -> FactorSpec:
    kind = str(raw["kind"])
    facts = raw.get("facts")
    if facts is None:
        facts = [raw["fact"]]
    params = {
        k: v
        for k, v in raw.items()
        if k
        not in {
            "name", "kind", "fact", "facts", "max_score", "remediation_threshold",
            "recommendation", "description", "absent_description", "required", "floor_score",
        }
    }
    return FactorSpec(
        name=str(raw["name"]),
        kind=kind,
        facts=tuple(str(f) for f in facts),
        max_score=float(raw["max_score"]),
        remediation_threshold=float(raw["remediation_threshold"]),
        recommendation=str(raw["recommendation"]).strip(),
        description=str(raw["description"]),
        absent_description=str(raw.get("absent_description", "Not disclosed")),
        required=bool(raw.get("required", False)),
        floor_score=float(raw.get("floor_score", 0.0)),
        params=params,
    )


def _parse_category(raw: Dict[str, Any]) -> CategorySpec:
    weights = raw.get("weights")
    return CategorySpec(
        name=str(raw["name"]),
        factors=tuple(_parse_factor(f) for f in raw["factors"]),
        weights={str(k): float(v) for k, v in weights.items()} if weights is not None else None,
    )


def load_policy(path: Path) -> ScoringPolicy:
    try:
        raw = json.loads(Path(path).read_text(encoding="utf-8"))
    except (OSError, json.JSONDecodeError) as exc:
        raise ConfigurationError(f"Cannot read scoring policy {path}: {exc}") from exc
    policy = policy_from_dict(raw)
    logger.info("Loaded scoring policy %s from %s", policy.policy_version, path)
    return policy


def default_policy() -> ScoringPolicy:
    return load_policy(DEFAULT_POLICY_PATH)


def policy_from_dict(raw: Dict[str, Any]) -> ScoringPolicy:
    if not isinstance(raw, dict):
        raise ConfigurationError("Scoring policy must be a JSON object")
    _validate_policy(raw)
    return ScoringPolicy(raw=raw)


def _validate_policy(raw: Dict[str, Any]) -> None:
    levels = raw.get("risk_levels") or {}
    try:
        low = float(levels.get("low", 80.0))
        medium = float(levels.get("medium", 60.0))
        high = float(levels.get("high", 40.0))
    except (TypeError, ValueError) as exc:
        raise ConfigurationError(f"Risk level thresholds must be numbers: {exc}") from exc
    if not (100.0 >= low > medium > high > 0.0):
        raise ConfigurationError("Risk level thresholds must satisfy 100 >= low > medium > high > 0")

    types = raw.get("entity_types")
    if not isinstance(types, dict) or not types:
        raise ConfigurationError("Missing policy key: entity_types")

    for entity_type, entry in types.items():
        cats = entry.get("categories") if isinstance(entry, dict) else None
        if not isinstance(cats, list) or not cats:
            raise ConfigurationError(f"Entity type '{entity_type}' has no categories")
        seen_categories: set = set()
        seen_factors: set = set()
        for cat in cats:
            _validate_category(entity_type, cat)
            if cat["name"] in seen_categories:
                raise ConfigurationError(f"Duplicate category '{cat['name']}' for '{entity_type}'")
            seen_categories.add(cat["name"])
            for f in cat["factors"]:
                # Factor names key weight maps and remediation rules.
                if f["name"] in seen_factors:
                    raise ConfigurationError(f"Factor '{f['name']}' appears twice for '{entity_type}'")
                seen_factors.add(f["name"])


def _validate_category(entity_type: str, cat: Dict[str, Any]) -> None:
    if not isinstance(cat, dict):
        raise ConfigurationError(f"Categories of '{entity_type}' must be objects")
    where = f"{entity_type}/{cat.get('name', '?')}"
    if not cat.get("name"):
        raise ConfigurationError(f"Category without a name in '{entity_type}'")
    factors = cat.get("factors")
    if not isinstance(factors, list) or not factors:
        raise ConfigurationError(f"Category '{where}' has no factors")

    names: List[str] = []
    for f in factors:
        _validate_factor(where, f)
        if f["name"] in names:
            raise ConfigurationError(f"Duplicate factor '{f['name']}' in '{where}'")
        names.append(f["name"])

    weights = cat.get("weights")
    if weights is None:
        return
    if not isinstance(weights, dict) or not weights:
        raise ConfigurationError(f"Weight map of '{where}' must be a non-empty object")
    unknown = sorted(set(weights) - set(names))
    if unknown:
        raise ConfigurationError(f"Weight map of '{where}' references unknown factors: {', '.join(unknown)}")
    total = 0.0
    for name, w in weights.items():
        if isinstance(w, bool) or not isinstance(w, (int, float)) or not math.isfinite(w) or w < 0:
            raise ConfigurationError(f"Weight for '{name}' in '{where}' must be a non-negative number")
        total += float(w)
    if total <= 0:
        raise ConfigurationError(f"Weights of '{where}' must sum to a positive value")


def _validate_factor(where: str, f: Dict[str, Any]) -> None:
    if not isinstance(f, dict):
        raise ConfigurationError(f"Factors of '{where}' must be objects")
    name = f.get("name")
    if not name:
        raise ConfigurationError(f"Factor without a name in '{where}'")
    label = f"{where}/{name}"

    kind = f.get("kind")
    if kind not in FACTOR_KINDS:
        raise ConfigurationError(f"Factor '{label}' has unsupported kind {kind!r}")

    facts = f.get("facts") if "facts" in f else [f.get("fact")]
    if not isinstance(facts, list) or not facts or not all(isinstance(x, str) and x for x in facts):
        raise ConfigurationError(f"Factor '{label}' must name its fact(s)")
    if kind != "checklist" and len(facts) != 1:
        raise ConfigurationError(f"Factor '{label}' of kind {kind} reads exactly one fact")

    max_score = _number(label, f, "max_score")
    if max_score <= 0:
        raise ConfigurationError(f"Factor '{label}' max_score must be positive")
    floor_score = _number(label, f, "floor_score", 0.0)
    if not 0 <= floor_score <= max_score:
        raise ConfigurationError(f"Factor '{label}' floor_score outside [0, max_score]")
    threshold = _number(label, f, "remediation_threshold")
    if not 0 <= threshold <= 100:
        raise ConfigurationError(f"Factor '{label}' remediation_threshold must be a percentage")
    if not str(f.get("recommendation") or "").strip():
        raise ConfigurationError(f"Factor '{label}' has no recommendation text")

    if kind == "linear":
        lo = _number(label, f, "floor_value")
        hi = _number(label, f, "ideal_value")
        if lo == hi:
            raise ConfigurationError(f"Factor '{label}' floor_value equals ideal_value")
    elif kind == "ladder":
        steps = f.get("steps")
        if not isinstance(steps, list) or not steps:
            raise ConfigurationError(f"Factor '{label}' needs ladder steps")
        previous = math.inf
        for step in steps:
            if not isinstance(step, list) or len(step) != 2:
                raise ConfigurationError(f"Factor '{label}' ladder steps are [min_value, points] pairs")
            bound, points = _coerce(label, step[0]), _coerce(label, step[1])
            if bound >= previous:
                raise ConfigurationError(f"Factor '{label}' ladder steps must be in descending order")
            if not 0 <= points <= max_score:
                raise ConfigurationError(f"Factor '{label}' ladder points outside [0, max_score]")
            previous = bound
        below = _number(label, f, "below", 0.0)
        if not 0 <= below <= max_score:
            raise ConfigurationError(f"Factor '{label}' below score outside [0, max_score]")
    elif kind == "lookup":
        table = f.get("table")
        if not isinstance(table, dict) or not table:
            raise ConfigurationError(f"Factor '{label}' needs a lookup table")
        for key, points in table.items():
            if not 0 <= _coerce(label, points) <= max_score:
                raise ConfigurationError(f"Factor '{label}' lookup value for {key!r} outside [0, max_score]")
        default = _number(label, f, "default", floor_score)
        if not 0 <= default <= max_score:
            raise ConfigurationError(f"Factor '{label}' lookup default outside [0, max_score]")

    for key in ("description", "absent_description"):
        template = f.get(key)
        if key == "description" and not template:
            raise ConfigurationError(f"Factor '{label}' has no description template")
        if template is None:
            continue
        try:
            str(template).format(**_TEMPLATE_SAMPLES[kind])
        except (KeyError, IndexError, ValueError) as exc:
            raise ConfigurationError(f"Factor '{label}' {key} template is invalid: {exc}") from exc


def _number(label: str, f: Dict[str, Any], key: str, default: Optional[float] = None) -> float:
    value = f.get(key, default)
    if value is None or isinstance(value, bool):
        raise ConfigurationError(f"Factor '{label}' requires numeric {key}")
    try:
        out = float(value)
    except (TypeError, ValueError) as exc:
        raise ConfigurationError(f"Factor '{label}' {key} must be a number") from exc
    if not math.isfinite(out):
        raise ConfigurationError(f"Factor '{label}' {key} must be finite")
    return out


def _coerce(label: str, value: Any) -> float:
    if isinstance(value, bool) or not isinstance(value, (int, float)) or not math.isfinite(value):
        raise ConfigurationError(f"Factor '{label}' has a non-numeric score table entry: {value!r}")
    return float(value)
