from __future__ import annotations

import argparse
import json
import logging
import sys
from dataclasses import asdict
from datetime import datetime, timezone
from pathlib import Path
from typing import Any, Mapping

import yaml

from .config import get_settings
from .engine.conditions import RuleSet
from .engine.loader import load_rules_result, load_ruleset
from .engine.types import EvaluationPolicy, RuleMode
from .errors import ConfigurationError
from .lexicon import load_lexicon
from .moderation import analyze_content
from .priority import dispute_due_at, dispute_priority
from .types import ContentRecord, ContentType, DisputeCategory, DisputeType, ModerationResult


def _build_parser() -> argparse.ArgumentParser:
    parser = argparse.ArgumentParser(prog="trust-engine", description="Trust & safety helper commands")
    parser.add_argument("--log-level", default="WARNING", help="Logging level (default: WARNING)")
    subparsers = parser.add_subparsers(dest="command", required=True)

    rules = subparsers.add_parser("rules", help="Moderation rules commands")
    rules_sub = rules.add_subparsers(dest="rules_command", required=True)
    validate = rules_sub.add_parser("validate", help="Validate a moderation rules file")
    validate.add_argument("--rules", type=Path, default=None, help="Rules YAML (default: TRUST_RULES_PATH)")
    validate.add_argument("--mode", choices=["warn", "strict"], help="Override rules mode")
    validate.add_argument("--print-config", action="store_true", help="Print configuration summary")
    validate.add_argument("--json", action="store_true", help="Emit validation result as JSON")
    validate.add_argument(
        "--treat-warnings-as-errors",
        action="store_true",
        help="Return exit code 2 when warnings are present",
    )

    classify = subparsers.add_parser("classify", help="Run auto-moderation over a content record")
    classify.add_argument("--content", type=Path, required=True, help="YAML/JSON file describing the content")
    classify.add_argument("--rules", type=Path, default=None, help="Rules YAML (default: TRUST_RULES_PATH)")
    classify.add_argument("--lexicon", type=Path, default=None, help="Lexicon YAML (default: TRUST_LEXICON_PATH)")
    classify.add_argument("--mode", choices=["warn", "strict"], help="Override rules mode")

    dispute = subparsers.add_parser("dispute-priority", help="Show the priority and due date for a dispute")
    dispute.add_argument("--type", dest="dispute_type", required=True, choices=[t.value for t in DisputeType])
    dispute.add_argument("--category", required=True, choices=[c.value for c in DisputeCategory])
    dispute.add_argument("--amount", type=float, default=None)
    return parser


def _handle_validate(args: argparse.Namespace) -> int:
    mode: RuleMode | None = args.mode  # type: ignore[assignment]
    rules_path = args.rules or get_settings().rules_path
    result = load_rules_result(rules_path, override_mode=mode)

    if args.print_config:
        counts = result.counts
        print(
            f"status={result.status} mode={result.mode} rules={counts['rules']} "
            f"inactive={counts['inactive']} disabled_rules={counts['disabled_rules']}"
        )
        print(f"errors={counts['errors']} warnings={counts['warnings']}")
        if result.rules:
            print("rules_ok=" + ",".join(rule.id for rule in result.rules))

    if args.json:
        payload = {
            "status": result.status,
            "mode": result.mode,
            "counts": result.counts,
            "issues": [asdict(issue) for issue in result.issues],
        }
        print(json.dumps(payload, ensure_ascii=False, indent=2))
    else:
        for issue in result.issues:
            print(f"{issue.level.upper():7} {issue.code} {issue.where}: {issue.msg}")
            if issue.hint:
                print(f"        hint: {issue.hint}")

    exit_code = 0 if result.status == "ok" else 2
    if exit_code == 0 and args.treat_warnings_as_errors and result.counts.get("warnings", 0) > 0:
        exit_code = 2
    return exit_code


def _load_content(path: Path) -> ContentRecord:
    with path.open("r", encoding="utf-8") as fp:
        data = yaml.safe_load(fp)
    if not isinstance(data, Mapping):
        raise ValueError("content file must be a mapping")
    return ContentRecord(
        id=str(data.get("id") or path.stem),
        author_id=str(data.get("author_id") or "unknown"),
        content_type=ContentType(str(data.get("content_type", "comment")).lower()),
        content=str(data.get("content") or ""),
        title=data.get("title"),
        media_urls=tuple(str(url) for url in data.get("media_urls") or ()),
        metadata=dict(data.get("metadata") or {}),
    )


def _result_payload(result: ModerationResult) -> dict[str, Any]:
    return {
        "content_id": result.content_id,
        "overall_score": result.overall_score,
        "requires_human_review": result.requires_human_review,
        "categories": {name: asdict(category) for name, category in result.categories.items()},
        "recommendations": [
            {
                "action": rec.action.value,
                "reason": rec.reason,
                "confidence": rec.confidence,
                "severity": rec.severity.value,
            }
            for rec in result.recommendations
        ],
        "violations": [
            {
                "rule_id": violation.rule_id,
                "rule_name": violation.rule_name,
                "severity": violation.severity.value,
                "description": violation.description,
            }
            for violation in result.violations
        ],
    }


def _handle_classify(args: argparse.Namespace) -> int:
    settings = get_settings()
    try:
        record = _load_content(args.content)
    except (OSError, yaml.YAMLError, ValueError) as exc:
        print(f"failed to read content {args.content}: {exc}", file=sys.stderr)
        return 2

    rules_path: Path = args.rules or settings.rules_path
    mode = args.mode or settings.rules_mode
    ruleset = None
    if rules_path.exists():
        try:
            ruleset = load_ruleset(rules_path, mode=mode)
        except ConfigurationError as exc:
            print(str(exc), file=sys.stderr)
            return 2
    elif args.rules is not None:
        print(f"rules file not found: {rules_path}", file=sys.stderr)
        return 2
    else:
        ruleset = RuleSet(())

    lexicon = load_lexicon(args.lexicon or settings.lexicon_path)
    result = analyze_content(record, lexicon=lexicon, ruleset=ruleset, policy=EvaluationPolicy.from_mode(mode))
    print(json.dumps(_result_payload(result), ensure_ascii=False, indent=2))
    return 0


def _handle_dispute_priority(args: argparse.Namespace) -> int:
    priority = dispute_priority(DisputeType(args.dispute_type), DisputeCategory(args.category), args.amount)
    due_at = dispute_due_at(priority, datetime.now(timezone.utc), get_settings().load_tables().dispute_due_days)
    print(json.dumps({"priority": priority.value, "due_at": due_at.isoformat()}, ensure_ascii=False))
    return 0


def main() -> None:
    parser = _build_parser()
    args = parser.parse_args()
    logging.basicConfig(
        level=getattr(logging, str(args.log_level).upper(), logging.WARNING),
        format="%(asctime)s %(levelname)s %(name)s: %(message)s",
    )
    if args.command == "rules":
        exit_code = _handle_validate(args)
    elif args.command == "classify":
        exit_code = _handle_classify(args)
    elif args.command == "dispute-priority":
        exit_code = _handle_dispute_priority(args)
    else:  # pragma: no cover
        parser.error(f"Unknown command: {args.command}")
        return
    sys.exit(exit_code)


if __name__ == "__main__":
    main()
