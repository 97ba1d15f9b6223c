"""
Admission CLI Commands.

Offline tools for campaign authors: dry-run display rules against a page
context, and replay admission cycles over a pool snapshot to inspect the
resulting natural / quick-win mix.
"""

from __future__ import annotations

import argparse
import json
import random
from collections import Counter
from pathlib import Path
from typing import Any

import yaml

from ..core import format_share, get_utc_timestamp
from ..core.logging import get_logger

logger = get_logger(__name__)

DEFAULT_SIMULATION_CYCLES = 50
DEFAULT_STEP_SECONDS = 10.0


def load_document(path: str) -> dict[str, Any]:
    """
    Load a JSON or YAML document.

    Raises:
        FileNotFoundError: If the file does not exist
        ValueError: If the document is not a mapping
    """
    file_path = Path(path)
    with open(file_path) as f:
        if file_path.suffix.lower() in (".yaml", ".yml"):
            data = yaml.safe_load(f)
        else:
            data = json.load(f)

    if not isinstance(data, dict):
        raise ValueError(f"{path}: expected a mapping at top level")
    return data


def cmd_evaluate(args: argparse.Namespace) -> dict:
    """Dry-run a campaign's display rules against a page context."""
    from ..models import DisplayRules, PageContext
    from ..services.admission import DisplayRuleEvaluator

    try:
        rules_data = load_document(args.rules)
        context_data = load_document(args.context)
    except (OSError, ValueError, yaml.YAMLError) as e:
        return {
            "error": "invalid_input",
            "message": str(e),
            "query_timestamp": get_utc_timestamp(),
        }

    # Accept either bare rules or a campaign document
    rules_data = rules_data.get("display_rules", rules_data.get("displayRules", rules_data))
    rules = DisplayRules.from_dict(rules_data)
    context = PageContext.from_dict(context_data)
    evaluation = DisplayRuleEvaluator().evaluate(rules, context)

    return {
        "status": "ok",
        "evaluation": evaluation.to_dict(),
        "warnings": rules.validate(),
        "rules": rules.to_dict(),
        "context": context.to_dict(),
        "query_timestamp": get_utc_timestamp(),
    }


def cmd_simulate(args: argparse.Namespace) -> dict:
    """
    Replay admission cycles over a pool snapshot.

    Every cycle is a new page view ``step`` seconds after the previous one;
    each selection is treated as rendered and confirmed.
    """
    from ..core.config import get_settings
    from ..models import PageContext, PoolSnapshot, SessionState
    from ..services.admission import AdmissionEngine
    from ..services.graduation import BusinessProfileLoader

    try:
        snapshot = PoolSnapshot.from_dict(load_document(args.snapshot))
        context_data = load_document(args.context) if args.context else {"url": "/"}
    except (OSError, ValueError, yaml.YAMLError) as e:
        return {
            "error": "invalid_input",
            "message": str(e),
            "query_timestamp": get_utc_timestamp(),
        }

    settings = get_settings()
    profiles = BusinessProfileLoader(
        settings.profile_dir, default_type=settings.default_business_type
    )
    engine = AdmissionEngine(
        profiles, rng=random.Random(args.seed), recent_window=settings.recent_window
    )

    now = 0.0
    session = SessionState.new(
        snapshot.widget_id, ttl_seconds=settings.session_ttl_seconds, now=now
    )

    shown = 0
    sides: Counter[str] = Counter()
    origins: Counter[str] = Counter()
    campaigns: Counter[str] = Counter()
    misses: Counter[str] = Counter()
    fallbacks = 0

    for cycle in range(args.cycles):
        now = cycle * args.step
        session = session.renew_if_expired(now, settings.session_ttl_seconds)
        page_context = PageContext.from_dict({**context_data, "page_id": f"page-{cycle}"})
        session.start_page(page_context.page_id)

        result = engine.evaluate(snapshot, session, page_context, now)
        if result.selection is None:
            misses[result.reason or "unknown"] += 1
            continue

        selection = engine.confirm(result, session, now)
        shown += 1
        sides[selection.side] += 1
        origins[selection.event.origin.value] += 1
        campaigns[selection.campaign_id] += 1
        if selection.fallback:
            fallbacks += 1

    logger.debug(f"Simulated {args.cycles} cycles for {snapshot.widget_id}: {shown} shown")

    return {
        "status": "ok",
        "widget_id": snapshot.widget_id,
        "cycles": args.cycles,
        "shown": shown,
        "target_ratio": engine.target_ratio_for(snapshot.widget),
        "natural_share": format_share(sides.get("natural", 0), shown),
        "sides": dict(sides),
        "origins": dict(origins),
        "campaigns": dict(campaigns),
        "fallbacks": fallbacks,
        "not_shown": dict(misses),
        "seed": args.seed,
        "query_timestamp": get_utc_timestamp(),
    }


def register_parsers(subparsers: argparse._SubParsersAction) -> None:
    """Register admission command parsers."""

    # evaluate command
    evaluate_parser = subparsers.add_parser(
        "evaluate",
        help="Dry-run display rules against a page context",
    )
    evaluate_parser.add_argument(
        "--rules",
        required=True,
        help="Display rules (or campaign) file, JSON or YAML",
    )
    evaluate_parser.add_argument(
        "--context",
        required=True,
        help="Page context file, JSON or YAML",
    )
    evaluate_parser.set_defaults(func=cmd_evaluate)

    # simulate command
    simulate_parser = subparsers.add_parser(
        "simulate",
        help="Replay admission cycles over a pool snapshot",
    )
    simulate_parser.add_argument(
        "--snapshot",
        required=True,
        help="Pool snapshot file (widget, campaigns, playlists, events)",
    )
    simulate_parser.add_argument(
        "--context",
        help="Page context used for every cycle (default: url '/')",
    )
    simulate_parser.add_argument(
        "--cycles",
        type=int,
        default=DEFAULT_SIMULATION_CYCLES,
        help=f"Number of page views (default: {DEFAULT_SIMULATION_CYCLES})",
    )
    simulate_parser.add_argument(
        "--step",
        type=float,
        default=DEFAULT_STEP_SECONDS,
        help=f"Seconds between page views (default: {DEFAULT_STEP_SECONDS:g})",
    )
    simulate_parser.add_argument(
        "--seed",
        type=int,
        help="Random seed for reproducible runs",
    )
    simulate_parser.set_defaults(func=cmd_simulate)
