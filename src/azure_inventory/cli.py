from __future__ import annotations

import logging
import sys
from collections import Counter
from datetime import datetime, timezone
from pathlib import Path
from time import perf_counter
from typing import Any, Dict, List, Optional, Sequence

from .auth.providers import AuthContext, AuthError, resolve_auth
from .azure.clients import list_subscriptions as azure_list_subscriptions
from .azure.source import azure_source_factory
from .config import RunConfig, dump_config, load_run_config
from .export.jsonl import stable_json_dumps
from .logging import LogConfig, add_run_log_file, get_logger, setup_logging
from .normalize.schema import ROW_PUBLIC_IP, InventoryRow, Subscription, resolve_output_paths
from .topology.aggregator import InventoryAggregator
from .topology.diagram import DiagramBuilder, SubscriptionColors
from .topology.orphans import ORPHANED_LABEL
from .topology.pool import SubscriptionOutcome, SubscriptionWorkerPool
from .topology.registry import PublicIpRegistry
from .util.errors import AuthResolutionError, ConfigError, as_exit_code
from .util.rich_progress import RunProgress, render_run_summary_table

LOG = get_logger(__name__)

OUT_SCHEMA_VERSION = "1"

RUN_STATUS_OK = "OK"
RUN_STATUS_PARTIAL = "PARTIAL"
RUN_STATUS_FAILED = "FAILED"


class _StepTimers:
    def __init__(self) -> None:
        self._starts: Dict[str, float] = {}

    def start(self, key: str) -> None:
        self._starts[key] = perf_counter()

    def finish(self, key: str) -> Optional[int]:
        started = self._starts.pop(key, None)
        if started is None:
            return None
        return int((perf_counter() - started) * 1000)


def _log_event(
    logger: Any,
    level: int,
    message: str,
    *,
    step: str,
    phase: str,
    timers: Optional[_StepTimers] = None,
    timer_key: Optional[str] = None,
    **extra: Any,
) -> None:
    key = timer_key or step
    duration_ms = None
    if timers is not None:
        if phase == "start":
            timers.start(key)
        elif phase in {"complete", "error", "warning", "skipped"}:
            duration_ms = timers.finish(key)
    payload: Dict[str, Any] = {"step": step, "phase": phase, "event": f"{step}.{phase}"}
    if duration_ms is not None:
        payload["duration_ms"] = duration_ms
    payload.update(extra)
    logger.log(level, message, extra=payload)


def _resolve_auth(cfg: RunConfig) -> AuthContext:
    try:
        return resolve_auth(cfg.auth, cfg.tenant_id)
    except AuthError as e:
        raise AuthResolutionError(str(e)) from e


def filter_subscriptions(
    subscriptions: Sequence[Subscription],
    wanted: Optional[Sequence[str]],
) -> List[Subscription]:
    """
    Keep subscriptions whose name or id matches one of `wanted`
    (case-insensitive). No filter keeps everything.
    """
    if not wanted:
        return list(subscriptions)
    keys = {w.strip().lower() for w in wanted if w and w.strip()}
    selected = [s for s in subscriptions if s.id.lower() in keys or s.name.lower() in keys]
    matched = {s.id.lower() for s in selected} | {s.name.lower() for s in selected}
    unmatched = sorted(keys - matched)
    if unmatched:
        LOG.warning(
            "Requested subscriptions not visible to the credential",
            extra={"step": "subscriptions", "phase": "warning", "unmatched": unmatched},
        )
    if not selected:
        raise ConfigError("None of the requested subscriptions are visible to the credential")
    return selected


def build_run_summary(
    rows: Sequence[InventoryRow],
    outcomes: Sequence[SubscriptionOutcome],
) -> Dict[str, Any]:
    rows_by_type = Counter(r.type for r in rows)
    orphaned = sum(1 for r in rows if r.type == ROW_PUBLIC_IP and r.associated_with == ORPHANED_LABEL)
    failed = [o for o in outcomes if not o.ok]
    return {
        "schema_version": OUT_SCHEMA_VERSION,
        "subscriptions_total": len(outcomes),
        "subscriptions_ok": len(outcomes) - len(failed),
        "failed_subscriptions": [
            {"subscription": o.subscription.name, "subscription_id": o.subscription.id, "error": o.error or ""}
            for o in failed
        ],
        "rows_total": len(rows),
        "rows_by_type": dict(sorted(rows_by_type.items())),
        "orphaned_public_ips": orphaned,
        "outcomes": [
            {
                "subscription": o.subscription.name,
                "subscription_id": o.subscription.id,
                "status": o.status,
                "rows": o.row_count,
                "duration_ms": o.duration_ms,
                "error": o.error or "",
            }
            for o in outcomes
        ],
    }


def _write_run_summary(path: Path, summary: Dict[str, Any]) -> Path:
    path.parent.mkdir(parents=True, exist_ok=True)
    path.write_text(stable_json_dumps(summary), encoding="utf-8")
    return path


def cmd_run(cfg: RunConfig) -> int:
    from .export.csv import sort_rows, write_inventory_csv
    from .export.drawio import write_drawio
    from .export.jsonl import write_inventory_jsonl

    paths = resolve_output_paths(cfg.outdir)
    paths.root.mkdir(parents=True, exist_ok=True)
    add_run_log_file(paths.debug_log)
    started_at = datetime.now(timezone.utc).isoformat(timespec="seconds")
    timers = _StepTimers()

    status = RUN_STATUS_OK
    fatal_error: Optional[str] = None
    outcomes: List[SubscriptionOutcome] = []
    rows: List[InventoryRow] = []
    summary: Dict[str, Any] = {}

    _log_event(
        LOG,
        logging.INFO,
        "Starting inventory run",
        step="run",
        phase="start",
        timers=timers,
        outdir=str(cfg.outdir),
        parallelism=cfg.parallelism,
    )

    try:
        _log_event(LOG, logging.INFO, "Authentication started", step="auth", phase="start", timers=timers, method=cfg.auth)
        ctx = _resolve_auth(cfg)
        _log_event(LOG, logging.INFO, "Authentication resolved", step="auth", phase="complete", timers=timers, method=cfg.auth)

        _log_event(LOG, logging.INFO, "Subscription listing started", step="subscriptions", phase="start", timers=timers)
        subscriptions = filter_subscriptions(azure_list_subscriptions(ctx), cfg.subscriptions)
        if not subscriptions:
            raise ConfigError("No enabled subscriptions visible to the credential")
        _log_event(
            LOG,
            logging.INFO,
            "Subscriptions in scope",
            step="subscriptions",
            phase="complete",
            timers=timers,
            count=len(subscriptions),
        )

        registry = PublicIpRegistry()
        aggregator = InventoryAggregator()
        builder = DiagramBuilder(SubscriptionColors(seed=cfg.color_seed)) if cfg.diagram else None

        _log_event(
            LOG,
            logging.INFO,
            "Collection started",
            step="collect",
            phase="start",
            timers=timers,
            subscription_count=len(subscriptions),
        )
        with RunProgress(enabled=cfg.progress) as progress:
            progress.start_collection([s.name for s in subscriptions])

            def _on_complete(outcome: SubscriptionOutcome) -> None:
                progress.advance(outcome.subscription.name, rows=outcome.row_count, ok=outcome.ok)

            pool = SubscriptionWorkerPool(
                azure_source_factory(ctx),
                registry,
                aggregator,
                max_workers=cfg.parallelism,
                observer=builder,
                on_complete=_on_complete,
            )
            outcomes = pool.run(subscriptions)

        aggregator.close()
        rows = sort_rows(aggregator.drain())
        failed = [o for o in outcomes if not o.ok]
        if failed:
            status = RUN_STATUS_PARTIAL
        _log_event(
            LOG,
            logging.WARNING if failed else logging.INFO,
            "Collection complete",
            step="collect",
            phase="complete",
            timers=timers,
            rows=len(rows),
            failed_subscriptions=[o.subscription.name for o in failed],
        )

        _log_event(LOG, logging.INFO, "Export started", step="export", phase="start", timers=timers)
        write_inventory_csv(rows, paths.inventory_csv, already_sorted=True)
        write_inventory_jsonl(rows, paths.inventory_jsonl)
        if cfg.parquet:
            from .export.parquet import write_inventory_parquet

            write_inventory_parquet(rows, paths.inventory_parquet)
        if builder is not None:
            write_drawio(paths.diagram_drawio, builder.nodes(), builder.edges(), include_legend=cfg.legend)
        _log_event(
            LOG,
            logging.INFO,
            "Export complete",
            step="export",
            phase="complete",
            timers=timers,
            csv=str(paths.inventory_csv),
            diagram=str(paths.diagram_drawio) if builder is not None else "",
        )
    except Exception as e:
        status = RUN_STATUS_FAILED
        fatal_error = str(e)
        _log_event(LOG, logging.ERROR, "Inventory run failed", step="run", phase="error", timers=timers, error=fatal_error)
        raise
    finally:
        summary = build_run_summary(rows, outcomes)
        summary.update(
            {
                "status": status,
                "started_at": started_at,
                "finished_at": datetime.now(timezone.utc).isoformat(timespec="seconds"),
                "fatal_error": fatal_error or "",
                "config": dump_config(cfg),
            }
        )
        _write_run_summary(paths.run_summary_json, summary)

    _log_event(
        LOG,
        logging.INFO,
        "Inventory run complete",
        step="run",
        phase="complete",
        timers=timers,
        status=status,
        rows=len(rows),
    )
    render_run_summary_table(enabled=cfg.progress, status=status, summary=summary, outdir=str(cfg.outdir))
    return 0


def cmd_validate_auth(cfg: RunConfig) -> int:
    ctx = _resolve_auth(cfg)
    subscriptions = azure_list_subscriptions(ctx)
    LOG.info(
        "Authentication validated",
        extra={"method": cfg.auth, "subscriptions": len(subscriptions)},
    )
    # Print to stdout a concise success message (no secrets)
    print(f"OK: authentication validated ({ctx.method}); visible subscriptions: {len(subscriptions)}")
    return 0


def cmd_list_subscriptions(cfg: RunConfig) -> int:
    ctx = _resolve_auth(cfg)
    for s in azure_list_subscriptions(ctx):
        print(f"{s.id},{s.name}")
    return 0


def main() -> None:
    try:
        command, cfg = load_run_config()
        setup_logging(LogConfig(level=cfg.log_level, json_logs=cfg.json_logs))

        if command == "run":
            code = cmd_run(cfg)
        elif command == "validate-auth":
            code = cmd_validate_auth(cfg)
        elif command == "list-subscriptions":
            code = cmd_list_subscriptions(cfg)
        else:
            raise ConfigError(f"Unknown command: {command}")

        sys.exit(code)
    except SystemExit:
        raise
    except BrokenPipeError:
        # Common when users pipe to `head` or similar tools.
        sys.exit(0)
    except Exception as e:
        setup_logging(LogConfig())
        LOG.error("Execution failed", extra={"error": str(e)})
        sys.exit(as_exit_code(e))


if __name__ == "__main__":
    main()
