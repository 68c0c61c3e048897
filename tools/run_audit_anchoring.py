"""Run audit Merkle batches over the sales ledger (for cron/CronJob execution)."""

from __future__ import annotations

import argparse
import asyncio
import json
from datetime import UTC, datetime
from uuid import uuid4

from saleproof.core.config import Settings, get_settings
from saleproof.core.crypto.anchoring import HttpAnchorClient
from saleproof.core.logging import bind_log_context, configure_logging
from saleproof.core.records import StoredAudit
from saleproof.db.session import close_db, get_background_session, init_db
from saleproof.modules.audit.anchoring_service import AuditAnchoringService
from saleproof.modules.audit.report import generate_audit_report
from saleproof.modules.ledger.sql_store import SqlLedgerStore


def _parse_args() -> argparse.Namespace:
    parser = argparse.ArgumentParser(description="Audit and anchor unaudited sales.")
    parser.add_argument(
        "--max-batches",
        type=int,
        default=None,
        help="Optional safety cap for batches audited in one run.",
    )
    parser.add_argument(
        "--report",
        action="store_true",
        help="Include a full audit report in the JSON summary.",
    )
    parser.add_argument(
        "--create-schema",
        action="store_true",
        help="Create the ledger table if it does not exist.",
    )
    parser.add_argument(
        "--json-logs",
        action="store_true",
        help="Render stderr logs as JSON regardless of environment.",
    )
    return parser.parse_args()


def build_summary(
    settings: Settings,
    run_id: str,
    audits: list[StoredAudit],
    reanchored: list[StoredAudit],
    unanchored: list[int],
) -> dict[str, object]:
    """JSON summary printed on stdout at the end of a run."""
    return {
        "service": settings.project_name,
        "version": settings.version,
        "run_id": run_id,
        "ran_at": datetime.now(UTC).isoformat(),
        "batch_count": len(audits),
        "audits": [
            {
                "sequence": stored.sequence,
                "merkle_root": stored.audit.merkle_root,
                "record_count": stored.audit.record_count,
                "anchor_ref": stored.audit.anchor_ref,
            }
            for stored in audits
        ],
        "reanchored": [stored.sequence for stored in reanchored],
        "unanchored": unanchored,
    }


async def _main() -> int:
    args = _parse_args()
    settings = get_settings()
    configure_logging(settings, json_output=True if args.json_logs else None)
    run_id = uuid4().hex
    bind_log_context(run_id=run_id)
    await init_db(settings, create_schema=args.create_schema)
    anchor = (
        HttpAnchorClient(settings.anchor_url, timeout=settings.anchor_timeout_seconds)
        if settings.anchor_url
        else None
    )
    try:
        async with get_background_session() as session:
            store = SqlLedgerStore(session)
            service = AuditAnchoringService(store, anchor, settings=settings)
            reanchored = await service.anchor_unanchored_roots()
            audits = await service.anchor_all_pending(max_batches=args.max_batches)
            unanchored = [
                stored.sequence
                for stored in await store.list_audit_records()
                if stored.audit.anchor_ref is None
            ]
            summary = build_summary(settings, run_id, audits, reanchored, unanchored)
            if args.report:
                report = await generate_audit_report(store)
                summary["report"] = report.model_dump(mode="json")
        print(json.dumps(summary, indent=2))
        return 1 if anchor is not None and unanchored else 0
    finally:
        await close_db()


if __name__ == "__main__":
    raise SystemExit(asyncio.run(_main()))
