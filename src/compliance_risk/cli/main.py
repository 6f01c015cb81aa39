from __future__ import annotations

import argparse
import asyncio
import json
import logging
import sys
from datetime import datetime, timezone
from pathlib import Path
from typing import Any, Dict, List, Optional

from compliance_risk.core.assessment_engine import AssessmentAssembler, Clock, utc_now
from compliance_risk.core.assessment_service import RiskAssessmentService
from compliance_risk.core.errors import ConfigurationError, InvalidInputError, StoreError
from compliance_risk.core.serialization import assessment_to_dict
from compliance_risk.core.settings import Settings, configure_logging, load_settings
from compliance_risk.core.snapshot_store import JsonlSnapshotStore, TimeRange
from compliance_risk.domain.entity_types import parse_entity_type
from compliance_risk.domain.normalizers import get_normalizer
from compliance_risk.engine.explainability import weakest_factors
from compliance_risk.engine.trends import score_change, trend_series

logger = logging.getLogger(__name__)

EXIT_OK = 0
EXIT_INVALID_INPUT = 2
EXIT_CONFIGURATION = 3
EXIT_STORE = 4


def _load_input(path: str) -> Dict[str, Any]:
    with open(path, "r", encoding="utf-8") as f:
        raw = json.load(f)
    if not isinstance(raw, dict):
        raise InvalidInputError("Input must be a JSON object")
    return raw


def _parse_instant(text: str) -> datetime:
    try:
        value = datetime.fromisoformat(text)
    except ValueError:
        raise argparse.ArgumentTypeError(f"not an ISO-8601 timestamp: {text!r}") from None
    if value.tzinfo is None:
        value = value.replace(tzinfo=timezone.utc)
    return value


def _build_parser() -> argparse.ArgumentParser:
    parser = argparse.ArgumentParser(prog="compliance-risk", description="Crypto compliance risk scoring")
    parser.add_argument("--policy", type=Path, default=None, help="Scoring policy JSON (overrides env)")
    parser.add_argument("--store-dir", type=Path, default=None, help="Snapshot store root (overrides env)")
    sub = parser.add_subparsers(dest="command", required=True)

    assess = sub.add_parser("assess", help="Score an entity and record the snapshot")
    assess.add_argument("input", help="JSON with entity_id, entity_type and disclosure or facts")
    assess.add_argument("--at", type=_parse_instant, default=None, help="Fixed assessment timestamp")
    assess.add_argument("--no-store", action="store_true", help="Do not record the snapshot")

    history = sub.add_parser("history", help="Show the recorded score history of an entity")
    history.add_argument("entity_id")
    history.add_argument("--since", type=_parse_instant, default=None)
    history.add_argument("--until", type=_parse_instant, default=None)
    return parser


def _resolve_settings(args: argparse.Namespace) -> Settings:
    settings = load_settings()
    return Settings(
        policy_path=args.policy or settings.policy_path,
        store_dir=args.store_dir or settings.store_dir,
        log_level=settings.log_level,
    )


async def _run_assess(args: argparse.Namespace, settings: Settings) -> int:
    raw = _load_input(args.input)
    entity_id = str(raw.get("entity_id", "")).strip()
    entity_type = parse_entity_type(str(raw.get("entity_type", ""))).value

    clock: Clock = (lambda: args.at) if args.at is not None else utc_now
    assembler = AssessmentAssembler(policy=settings.load_policy(), clock=clock)
    service = RiskAssessmentService(assembler=assembler, store=JsonlSnapshotStore(settings.store_dir))

    if "facts" in raw:
        facts = raw.get("facts") or {}
        if not isinstance(facts, dict):
            raise InvalidInputError("'facts' must be an object")
    else:
        facts = get_normalizer(entity_type, service.normalizers).normalize(raw.get("disclosure") or {})

    if args.no_store:
        assessment = assembler.assemble(entity_id, entity_type, facts)
        _emit({
            "assessment": assessment_to_dict(assessment),
            "priorities": weakest_factors(assessment, top_n=3),
            "snapshot": {"stored": False, "error": None},
        })
        return EXIT_OK

    outcome = await service.assess(entity_id, entity_type, facts)
    result = {
        "assessment": assessment_to_dict(outcome.assessment),
        "priorities": weakest_factors(outcome.assessment, top_n=3),
        "snapshot": {
            "stored": outcome.stored,
            "error": str(outcome.store_error) if outcome.store_error else None,
        },
    }
    _emit(result)
    if outcome.store_error is not None:
        sys.stderr.write(f"warning: snapshot not stored: {outcome.store_error}\n")
    return EXIT_OK


async def _run_history(args: argparse.Namespace, settings: Settings) -> int:
    store = JsonlSnapshotStore(settings.store_dir)
    history = await store.history(args.entity_id, TimeRange(start=args.since, end=args.until))
    points: List[Dict[str, Any]] = [
        {
            "timestamp": p.timestamp.isoformat(),
            "overallScore": p.overall_score,
            "riskLevel": p.risk_level.value,
        }
        for p in trend_series(history)
    ]
    change: Optional[float] = score_change(history)
    _emit({"entityId": args.entity_id, "points": points, "change": change})
    return EXIT_OK


def _emit(obj: Dict[str, Any]) -> None:
    sys.stdout.write(json.dumps(obj, ensure_ascii=False, indent=2))
    sys.stdout.write("\n")


def main(argv: Optional[List[str]] = None) -> int:
    args = _build_parser().parse_args(argv)

    try:
        settings = _resolve_settings(args)
        configure_logging(settings.log_level)
        if args.command == "assess":
            return asyncio.run(_run_assess(args, settings))
        return asyncio.run(_run_history(args, settings))
    except InvalidInputError as exc:
        sys.stderr.write(f"error: {exc}\n")
        return EXIT_INVALID_INPUT
    except ConfigurationError as exc:
        sys.stderr.write(f"configuration error: {exc}\n")
        return EXIT_CONFIGURATION
    except StoreError as exc:
        sys.stderr.write(f"store error: {exc}\n")
        return EXIT_STORE
    except (OSError, ValueError) as exc:
        sys.stderr.write(f"error: {exc}\n")
        return EXIT_INVALID_INPUT


if __name__ == "__main__":
    raise SystemExit(main())
