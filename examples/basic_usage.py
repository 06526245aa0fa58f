#!/usr/bin/env python3
"""Programmatic flow example.

This demonstrates using the orchestrator components directly:

* load settings from `.env`
* wire the in-memory collaborators, with one partner made unavailable
* run a referral through all five stages
* read the partner settlement records and the progress snapshot

The unavailable partner does not fail the flow; it shows up as a rejected
settlement record.
"""

from __future__ import annotations

import argparse
import asyncio
from collections.abc import Sequence
from dataclasses import replace

from vr_business_flow.collaborators.in_memory import (
    InMemoryPartnerService,
    build_in_memory_collaborators,
)
from vr_business_flow.config import FlowSettings
from vr_business_flow.errors import EligibilityError
from vr_business_flow.flow.orchestrator import FlowOrchestrator
from vr_business_flow.logging import configure_logging


def _parse_args(argv: Sequence[str] | None = None) -> argparse.Namespace:
    parser = argparse.ArgumentParser(description="Run one client flow (programmatic example).")
    parser.add_argument("--name", required=True, help="Client name")
    parser.add_argument("--business-type", default="consulting", help="Client business type")
    parser.add_argument(
        "--unavailable-partner",
        default="accounting",
        help='Partner integration id that should fail, e.g. "accounting" (optional)',
    )
    return parser.parse_args(argv)


async def _run(orchestrator: FlowOrchestrator, name: str, business_type: str) -> None:
    referral = {
        "source": "vr_agency",
        "clientInfo": {"name": name, "businessType": business_type},
    }
    try:
        context = await orchestrator.execute_complete_flow(referral)
    finally:
        await orchestrator.events.drain()

    print(f"Client {context.client_id}: {context.current_stage.value}")
    print(f"Service category: {context.service_category}")
    for record in context.progress_metrics.partner_integrations:
        detail = record.reason if record.reason else "ok"
        print(f"  {record.integration_id}: {record.status} ({detail})")

    snapshot = await orchestrator.get_flow_status(context.client_id)
    print(f"Overall progress: {snapshot.overall_progress:.0%}")


def main(argv: Sequence[str] | None = None) -> int:
    args = _parse_args(argv)

    settings = FlowSettings()
    configure_logging(settings.log_level)

    failing = {args.unavailable_partner} if args.unavailable_partner else set()
    collaborators = replace(
        build_in_memory_collaborators(settings),
        partners=InMemoryPartnerService(fail_integrations=failing),
    )
    orchestrator = FlowOrchestrator(collaborators, settings=settings)

    try:
        asyncio.run(_run(orchestrator, args.name, args.business_type))
    except EligibilityError as exc:
        print(str(exc))
        return 1
    return 0


if __name__ == "__main__":
    raise SystemExit(main())
