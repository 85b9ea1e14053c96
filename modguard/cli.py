"""modguard CLI: score content, work the moderation queue, inspect the audit trail."""

from __future__ import annotations

import asyncio
import json
from dataclasses import replace
from pathlib import Path
from typing import Any, Awaitable, Optional, TypeVar

import click
import yaml
from rich.console import Console
from rich.panel import Panel
from rich.table import Table

from modguard import __version__
from modguard.analysis.models import ContentAnalysisInput, ContentType, UserHistory
from modguard.audit.models import AuditFilters
from modguard.auth.permissions import Actor, Role
from modguard.config import load_settings
from modguard.container import Services, build_services
from modguard.errors import ModGuardError, user_message
from modguard.logging_config import setup_logging
from modguard.moderation.models import ModerationStatus, QueueFilters, QueuePage, SORT_FIELDS
from modguard.orchestrator.models import OperationResult

console = Console()

T = TypeVar("T")

_STATUS_STYLE = {
    "pending": "yellow",
    "approved": "green",
    "rejected": "red",
    "escalated": "magenta",
}


def _services(ctx: click.Context) -> Services:
    obj = ctx.ensure_object(dict)
    if "services" not in obj:
        obj["services"] = build_services(obj["settings"])
    return obj["services"]


def _run(services: Services, coro: Awaitable[T]) -> T:
    """Run *coro* and let background notifications and listeners finish."""

    async def runner() -> T:
        try:
            return await coro
        finally:
            await services.orchestrator.drain(timeout=services.settings.notification_timeout)

    return asyncio.run(runner())


def _fail(message: str) -> None:
    console.print(f"[red]Error:[/] {message}")
    raise SystemExit(1)


def _report(result: OperationResult, done: str) -> None:
    for warning in result.warnings:
        console.print(f"  [yellow]![/] {warning}")
    if not result.success:
        _fail(result.message)
    console.print(f"[green]{done}[/] (audit {result.audit_id or '-'})")


def actor_options(fn):
    fn = click.option(
        "--role",
        default=Role.moderator.value,
        type=click.Choice([r.value for r in Role]),
        help="Role of the acting user",
    )(fn)
    fn = click.option("--actor", default="cli", help="Id of the acting user")(fn)
    return fn


@click.group()
@click.version_option(version=__version__)
@click.option("--config", "config_path", default=None, type=click.Path(dir_okay=False), help="YAML config file")
@click.option("--data-dir", default=None, type=click.Path(file_okay=False), help="Override the data directory")
@click.option("--log-level", default=None, help="DEBUG, INFO, WARNING or ERROR")
@click.option("--json-logs", is_flag=True, default=None, help="Emit logs as JSON lines")
@click.pass_context
def main(ctx, config_path, data_dir, log_level, json_logs):
    """modguard: content risk scoring and moderation.

    Scores brand and CV content, keeps the moderation queue, and records
    every moderation action in an audit trail.
    """
    try:
        settings = load_settings(config_path)
        overrides: dict[str, Any] = {}
        if data_dir:
            overrides["data_dir"] = Path(data_dir)
        if log_level:
            overrides["log_level"] = log_level
        if json_logs:
            overrides["log_json"] = True
        if overrides:
            settings = replace(settings, **overrides)
    except ModGuardError as exc:
        _fail(str(exc))
    setup_logging(settings.log_level, settings.log_json)
    ctx.ensure_object(dict)["settings"] = settings


# ── Analyze ──────────────────────────────────────────────────────────


@main.command()
@click.argument("content_file", type=click.Path(exists=True, dir_okay=False))
@click.option("--type", "content_type", required=True, type=click.Choice([t.value for t in ContentType]))
@click.option("--user-id", default="anonymous", help="Author of the content")
@click.option("--json", "as_json", is_flag=True, help="Print the raw score as JSON")
@click.pass_context
def analyze(ctx, content_file: str, content_type: str, user_id: str, as_json: bool):
    """Score a brand or CV stored in a YAML/JSON file.

    The file holds ``title``, ``description``, ``content_data`` and
    optionally ``user_history``.
    """
    with open(content_file) as f:
        doc = yaml.safe_load(f) or {}
    if not isinstance(doc, dict):
        _fail(f"{content_file} must contain a mapping")

    history = doc.get("user_history")
    score = _services(ctx).analyzer.analyze_content(
        ContentAnalysisInput(
            content_type=ContentType(content_type),
            user_id=user_id,
            title=doc.get("title") or "",
            description=doc.get("description") or "",
            content_data=doc.get("content_data"),
            user_history=UserHistory(**history) if isinstance(history, dict) else None,
        )
    )

    if as_json:
        click.echo(json.dumps(score.to_dict(), indent=2))
        return

    verdict = "[red]AUTO-FLAG[/]" if score.auto_flag else "[green]pass[/]"
    console.print(
        Panel(
            f"Score: [bold]{score.overall_score:.0f}[/]/100   "
            f"Confidence: {score.confidence:.2f}   Verdict: {verdict}",
            title=f"Risk analysis: {content_file}",
        )
    )
    if score.risk_factors:
        table = Table(title="Risk factors")
        table.add_column("Type", style="cyan")
        table.add_column("Severity")
        table.add_column("Score", justify="right")
        table.add_column("Description")
        for factor in score.risk_factors:
            table.add_row(factor.type.value, factor.severity.value, f"{factor.score:.0f}", factor.description)
        console.print(table)
    for warning in score.warnings:
        console.print(f"  [yellow]![/] {warning}")


# ── Queue ────────────────────────────────────────────────────────────


@main.group()
def queue():
    """Inspect the moderation queue."""


@queue.command(name="list")
@click.option("--status", default=None, type=click.Choice([s.value for s in ModerationStatus]))
@click.option("--content-type", default=None, type=click.Choice([t.value for t in ContentType]))
@click.option("--min-priority", default=None, type=click.IntRange(1, 5))
@click.option("--user-id", default=None)
@click.option("--sort-by", default="priority", type=click.Choice(SORT_FIELDS))
@click.option("--order", default="desc", type=click.Choice(["asc", "desc"]))
@click.option("--limit", default=50, type=click.IntRange(1, 1000))
@click.option("--offset", default=0, type=click.IntRange(0))
@click.pass_context
def list_queue(ctx, status, content_type, min_priority, user_id, sort_by, order, limit, offset):
    """List queue items."""
    services = _services(ctx)
    items, total = _run(
        services,
        services.queue.list_queue(
            QueueFilters(
                status=ModerationStatus(status) if status else None,
                content_type=content_type,
                priority_min=min_priority,
                user_id=user_id,
            ),
            QueuePage(limit=limit, offset=offset, sort_by=sort_by, sort_order=order),
        ),
    )
    if not items:
        console.print("[yellow]No queue items match.[/]")
        return

    table = Table(title=f"Moderation queue ({len(items)} of {total})")
    table.add_column("Id", style="dim")
    table.add_column("Type")
    table.add_column("Content", style="cyan")
    table.add_column("Status")
    table.add_column("Prio", justify="right")
    table.add_column("Risk", justify="right")
    table.add_column("Reason")
    for item in items:
        style = _STATUS_STYLE.get(item.status.value, "white")
        table.add_row(
            item.id,
            item.content_type,
            item.content_id,
            f"[{style}]{item.status.value}[/]",
            str(item.priority),
            f"{item.risk_score:.0f}",
            item.flag_reason[:50],
        )
    console.print(table)


@queue.command(name="stats")
@click.pass_context
def queue_stats(ctx):
    """Show queue counts and processing time."""
    services = _services(ctx)
    stats = _run(services, services.queue.get_stats())
    table = Table(title="Queue statistics", show_header=False)
    table.add_column("Metric")
    table.add_column("Value", justify="right")
    table.add_row("Pending", str(stats.pending_count))
    table.add_row("Approved", str(stats.approved_count))
    table.add_row("Rejected", str(stats.rejected_count))
    table.add_row("Escalated", str(stats.escalated_count))
    table.add_row("Processed today", str(stats.total_processed_today))
    table.add_row("Avg hours to decision", f"{stats.avg_processing_time_hours:.2f}")
    table.add_row("High priority pending", str(stats.high_priority_count))
    console.print(table)


# ── Moderation actions ───────────────────────────────────────────────


@main.command()
@click.argument("content_type", type=click.Choice([t.value for t in ContentType]))
@click.argument("content_id")
@click.option("--user-id", required=True, help="Author of the content")
@click.option("--reason", required=True)
@click.option("--priority", default=None, type=click.IntRange(1, 5))
@actor_options
@click.pass_context
def flag(ctx, content_type, content_id, user_id, reason, priority, actor, role):
    """Flag content for review."""
    services = _services(ctx)
    result = _run(
        services,
        services.actions.flag(Actor(actor, role), content_type, content_id, user_id, reason, priority=priority),
    )
    _report(result, f"Flagged as {result.data.id}" if result.success else "")


@main.command()
@click.argument("queue_id")
@click.argument("status", type=click.Choice(["approved", "rejected", "escalated"]))
@click.option("--notes", default=None, help="Moderator notes (the reason when escalating)")
@actor_options
@click.pass_context
def moderate(ctx, queue_id, status, notes, actor, role):
    """Approve, reject or escalate a queue item."""
    services = _services(ctx)
    result = _run(services, services.actions.moderate(Actor(actor, role), queue_id, status, notes))
    _report(result, f"Item {queue_id} {status}")


@main.command()
@click.argument("queue_id")
@click.option("--reason", required=True)
@actor_options
@click.pass_context
def escalate(ctx, queue_id, reason, actor, role):
    """Escalate a queue item to senior review."""
    services = _services(ctx)
    result = _run(services, services.actions.escalate(Actor(actor, role), queue_id, reason))
    _report(result, f"Item {queue_id} escalated")


@main.command()
@click.argument("status", type=click.Choice(["approved", "rejected", "escalated"]))
@click.argument("queue_ids", nargs=-1, required=True)
@click.option("--notes", default=None)
@click.option("--batch-size", default=None, type=click.IntRange(1))
@actor_options
@click.pass_context
def bulk(ctx, status, queue_ids, notes, batch_size, actor, role):
    """Apply one decision to several queue items."""
    services = _services(ctx)
    batch = _run(
        services,
        services.actions.bulk_moderate(
            Actor(actor, role), list(queue_ids), status, notes, batch_size=batch_size
        ),
    )
    admin = Role(role).is_admin
    for r in batch.results:
        if r.success:
            console.print(f"  [green]v[/] {r.item}")
        elif r.skipped:
            console.print(f"  [dim]-[/] {r.item} skipped")
        else:
            console.print(f"  [red]x[/] {r.item}: {user_message(r.error, admin=admin)}")
    s = batch.summary
    console.print(f"\n{s.successful} succeeded, {s.failed} failed, {s.skipped} skipped of {s.total}")
    for warning in s.warnings:
        console.print(f"[yellow]![/] {warning}")
    if s.failed:
        raise SystemExit(1)


# ── Audit ────────────────────────────────────────────────────────────


@main.group()
def audit():
    """Inspect the audit trail."""


def _audit_filters(actor_id, action, target_type, target_id, date_from, date_to) -> AuditFilters:
    return AuditFilters(
        actor_id=actor_id,
        action_type=action,
        target_type=target_type,
        target_id=target_id,
        date_from=date_from,
        date_to=date_to,
    )


def audit_filter_options(fn):
    for opt in reversed(
        [
            click.option("--actor-id", default=None),
            click.option("--action", default=None, help="Action type, e.g. moderate_content"),
            click.option("--target-type", default=None),
            click.option("--target-id", default=None),
            click.option("--from", "date_from", default=None, help="ISO timestamp lower bound"),
            click.option("--to", "date_to", default=None, help="ISO timestamp upper bound"),
        ]
    ):
        fn = opt(fn)
    return fn


@audit.command(name="list")
@audit_filter_options
@click.option("--page", default=1, type=click.IntRange(1))
@click.option("--limit", default=50, type=click.IntRange(1, 1000))
@click.pass_context
def audit_list(ctx, actor_id, action, target_type, target_id, date_from, date_to, page, limit):
    """List audit entries, newest first."""
    services = _services(ctx)
    filters = _audit_filters(actor_id, action, target_type, target_id, date_from, date_to)
    result = _run(services, services.audit.get_audit_log(filters, page=page, limit=limit))
    if not result.entries:
        console.print("[yellow]No audit entries match.[/]")
        return
    table = Table(title=f"Audit log (page {page}, {result.count} total)")
    table.add_column("When", style="dim")
    table.add_column("Actor")
    table.add_column("Action", style="cyan")
    table.add_column("Target")
    table.add_column("Result")
    table.add_column("ms", justify="right")
    for e in result.entries:
        if e.success is None:
            outcome = "[yellow]incomplete[/]"
        elif e.success:
            outcome = "[green]ok[/]"
        else:
            outcome = f"[red]failed[/] {(e.error_message or '')[:40]}"
        table.add_row(
            e.created_at[:19],
            e.actor_id or "system",
            e.action_type,
            f"{e.target_type}/{e.target_id or '-'}",
            outcome,
            "" if e.duration_ms is None else str(e.duration_ms),
        )
    console.print(table)


@audit.command(name="incomplete")
@click.option("--older-than", default=0.0, type=click.FloatRange(0), help="Seconds")
@click.pass_context
def audit_incomplete(ctx, older_than: float):
    """List actions whose outcome was never recorded."""
    services = _services(ctx)
    entries = _run(services, services.audit.get_incomplete_actions(older_than))
    if not entries:
        console.print("[green]No incomplete actions.[/]")
        return
    for e in entries:
        console.print(f"  [yellow]![/] {e.created_at[:19]} {e.action_type} {e.target_type}/{e.target_id or '-'} ({e.id})")


@audit.command(name="export")
@audit_filter_options
@click.option("--format", "fmt", default="json", type=click.Choice(["json", "csv"]))
@click.option("--output", "-o", default=None, type=click.Path(dir_okay=False), help="Write to a file")
@click.pass_context
def audit_export(ctx, actor_id, action, target_type, target_id, date_from, date_to, fmt, output):
    """Export audit entries as JSON or CSV."""
    services = _services(ctx)
    filters = _audit_filters(actor_id, action, target_type, target_id, date_from, date_to)
    text = _run(services, services.audit.export(fmt, filters))
    if output:
        Path(output).write_text(text, encoding="utf-8")
        console.print(f"[green]Exported to[/] {output}")
    else:
        click.echo(text)


# ── Auto-flagging ────────────────────────────────────────────────────


@main.group()
def autoflag():
    """Automatic content flagging."""


@autoflag.command(name="run")
@click.argument("content_type", type=click.Choice([t.value for t in ContentType]))
@click.argument("content_id")
@click.option("--user-id", required=True)
@click.pass_context
def autoflag_run(ctx, content_type, content_id, user_id):
    """Analyze stored content and flag it if needed."""
    services = _services(ctx)
    try:
        result = _run(services, services.autoflagger.analyze(content_type, content_id, user_id))
    except ModGuardError as exc:
        _fail(str(exc))
    score = result.risk_score
    if result.flagged:
        console.print(
            f"[red]Flagged[/] score {score.overall_score:.0f}, confidence {score.confidence:.2f} "
            f"(queue {result.moderation_queue_id})"
        )
    else:
        console.print(f"[green]Not flagged[/] score {score.overall_score:.0f}, confidence {score.confidence:.2f}")


@autoflag.command(name="stats")
@click.option("--days", default=30, type=click.IntRange(1))
@click.pass_context
def autoflag_stats(ctx, days: int):
    """Summarize automatic flags over the last DAYS days."""
    services = _services(ctx)
    stats = _run(services, services.autoflagger.get_auto_flagging_stats(days))
    console.print(
        Panel(
            f"Analyzed: {stats.total_analyzed}\n"
            f"Flagged: {stats.total_flagged} ({stats.flag_rate:.1f}%)\n"
            f"Average risk score: {stats.avg_risk_score:.2f}",
            title=f"Auto-flagging, last {days} days",
        )
    )
    if stats.risk_factor_breakdown:
        table = Table(title="Risk factors")
        table.add_column("Type", style="cyan")
        table.add_column("Count", justify="right")
        for name, count in sorted(stats.risk_factor_breakdown.items(), key=lambda kv: -kv[1]):
            table.add_row(name, str(count))
        console.print(table)


# ── Health ───────────────────────────────────────────────────────────


@main.command()
@click.pass_context
def health(ctx):
    """Check every service the pipeline depends on."""
    services = _services(ctx)
    report = _run(services, services.orchestrator.perform_health_check())
    colour = {"healthy": "green", "degraded": "yellow", "unhealthy": "red"}[report.overall.value]
    console.print(f"Overall: [{colour}]{report.overall.value}[/]")
    for name, svc in report.services.items():
        mark = "[green]up[/]" if svc.status == "up" else "[red]down[/]"
        timing = f" {svc.response_time_ms}ms" if svc.response_time_ms is not None else ""
        error = f" {svc.error}" if svc.error else ""
        console.print(f"  {name:<13} {mark}{timing}{error}")
    if report.overall.value == "unhealthy":
        raise SystemExit(1)


if __name__ == "__main__":
    main()
