"""
Graduation CLI Commands.

Inspect and drive widget graduation against the local event store:
    graduation status --widget ID
    graduation health --widget ID
    graduation run [--widget ID]
    maintenance run [--widget ID]
"""

from __future__ import annotations

import argparse
import asyncio
from contextlib import AsyncExitStack

from ..core import get_utc_timestamp
from ..core.logging import get_logger

logger = get_logger(__name__)


async def _open_source(stack: AsyncExitStack):
    """Aggregator client when configured, else counters from the store."""
    from ..core.config import get_settings
    from ..services.graduation import AggregatorAnalyticsSource, StoreAnalyticsSource

    settings = get_settings()
    if settings.analytics_url:
        return await stack.enter_async_context(AggregatorAnalyticsSource.from_settings(settings))
    return StoreAnalyticsSource()


async def _with_scheduler(callback):
    from ..services.event_store import SQLiteEventStore
    from ..services.graduation import GraduationScheduler

    async with AsyncExitStack() as stack:
        store = await stack.enter_async_context(SQLiteEventStore())
        source = await _open_source(stack)
        scheduler = GraduationScheduler.from_settings(store, source)
        return await callback(scheduler)


def _missing_widget(args: argparse.Namespace) -> dict:
    return {
        "error": "missing_argument",
        "message": f"graduation {args.graduation_command} requires --widget",
        "query_timestamp": get_utc_timestamp(),
    }


def cmd_graduation_status(args: argparse.Namespace) -> dict:
    """Show a widget's graduation readiness."""
    if not args.widget:
        return _missing_widget(args)

    async def run(scheduler):
        return await scheduler.controller.compute_status(args.widget)

    status = asyncio.run(_with_scheduler(run))
    return {
        "status": "ok",
        "graduation": status.model_dump(mode="json"),
        "query_timestamp": get_utc_timestamp(),
    }


def cmd_graduation_health(args: argparse.Namespace) -> dict:
    """Show a widget's lifecycle health score."""
    if not args.widget:
        return _missing_widget(args)

    async def run(scheduler):
        return await scheduler.controller.compute_health(args.widget)

    health = asyncio.run(_with_scheduler(run))
    return {
        "status": "ok",
        "health": health.model_dump(mode="json"),
        "query_timestamp": get_utc_timestamp(),
    }


def cmd_graduation_run(args: argparse.Namespace) -> dict:
    """Run one graduation cycle for one widget, or a full pass over all widgets."""

    async def run(scheduler):
        if args.widget:
            return await scheduler.controller.run_cycle(args.widget)
        return await scheduler.run_once()

    result = asyncio.run(_with_scheduler(run))
    if args.widget:
        return {
            "status": "ok",
            "cycle": result.model_dump(mode="json"),
            "query_timestamp": get_utc_timestamp(),
        }
    return {
        "status": "ok",
        "run": result.to_dict(),
        "query_timestamp": get_utc_timestamp(),
    }


def cmd_maintenance_run(args: argparse.Namespace) -> dict:
    """Expire quick-wins and flagged events past their profile TTLs."""

    async def run(scheduler):
        widget_ids = [args.widget] if args.widget else await scheduler.store.list_widget_ids()
        return [await scheduler.maintenance.run_for_widget(w) for w in widget_ids]

    reports = asyncio.run(_with_scheduler(run))
    return {
        "status": "ok",
        "widgets": [report.model_dump(mode="json") for report in reports],
        "quick_wins_expired": sum(r.quick_wins_expired for r in reports),
        "flagged_removed": sum(r.flagged_removed for r in reports),
        "query_timestamp": get_utc_timestamp(),
    }


def register_parsers(subparsers: argparse._SubParsersAction) -> None:
    """Register graduation and maintenance command parsers."""

    graduation_parser = subparsers.add_parser(
        "graduation",
        help="Widget graduation status, health and cycles",
    )
    graduation_sub = graduation_parser.add_subparsers(
        dest="graduation_command", help="Graduation commands"
    )

    status_parser = graduation_sub.add_parser("status", help="Graduation readiness of a widget")
    status_parser.add_argument("--widget", help="Widget ID")
    status_parser.set_defaults(func=cmd_graduation_status)

    health_parser = graduation_sub.add_parser("health", help="Lifecycle health of a widget")
    health_parser.add_argument("--widget", help="Widget ID")
    health_parser.set_defaults(func=cmd_graduation_health)

    run_parser = graduation_sub.add_parser(
        "run", help="Run graduation for one widget or all widgets"
    )
    run_parser.add_argument("--widget", help="Widget ID (default: all widgets)")
    run_parser.set_defaults(func=cmd_graduation_run)

    maintenance_parser = subparsers.add_parser(
        "maintenance",
        help="Event lifecycle maintenance",
    )
    maintenance_sub = maintenance_parser.add_subparsers(
        dest="maintenance_command", help="Maintenance commands"
    )
    maintenance_run = maintenance_sub.add_parser(
        "run", help="Expire quick-wins and remove old flagged events"
    )
    maintenance_run.add_argument("--widget", help="Widget ID (default: all widgets)")
    maintenance_run.set_defaults(func=cmd_maintenance_run)
