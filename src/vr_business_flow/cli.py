"""CLI entrypoint for the client flow.

Runs flows against the in-memory collaborators, lists the service catalog,
or serves the REST API.
"""

from __future__ import annotations

import argparse
import asyncio
import json
import logging
import sys
from collections.abc import Sequence

from pydantic import ValidationError as SettingsValidationError

from vr_business_flow import __version__
from vr_business_flow.collaborators.in_memory import build_in_memory_collaborators
from vr_business_flow.config import FlowSettings
from vr_business_flow.errors import EligibilityError, FlowError, ValidationError
from vr_business_flow.flow.orchestrator import FlowOrchestrator
from vr_business_flow.logging import configure_logging
from vr_business_flow.server.config import ServerSettings

logger = logging.getLogger(__name__)


def build_parser() -> argparse.ArgumentParser:
    parser = argparse.ArgumentParser(
        prog="vr-flow",
        description="Client workflow orchestration for the VR business-formation pipeline",
    )
    parser.add_argument("--version", action="version", version=f"vr-business-flow {__version__}")

    subparsers = parser.add_subparsers(dest="command", required=True)

    run = subparsers.add_parser(
        "run", help="Run one referral through the complete flow (in-memory collaborators)"
    )
    run.add_argument("--source", required=True, help="Referral source, e.g. 'vr_agency'")
    run.add_argument("--name", required=True, help="Client name")
    run.add_argument("--business-type", default="", help="Client business type")
    run.add_argument("--specialist", default=None, help="Assigned VR specialist id")

    subparsers.add_parser("services", help="List available service categories")

    serve = subparsers.add_parser("serve", help="Serve the REST API with uvicorn")
    serve.add_argument("--host", default=None, help="Bind host (defaults to VR_FLOW_HOST)")
    serve.add_argument(
        "--port", type=int, default=None, help="Bind port (defaults to VR_FLOW_PORT)"
    )

    return parser


async def _run_flow(
    orchestrator: FlowOrchestrator, referral: dict[str, object]
) -> dict[str, object]:
    try:
        context = await orchestrator.execute_complete_flow(referral)
        return context.to_summary()
    finally:
        await orchestrator.events.drain()


async def _list_services(orchestrator: FlowOrchestrator) -> list[str]:
    return await orchestrator.get_available_services()


def main(argv: Sequence[str] | None = None) -> int:
    parser = build_parser()
    args = parser.parse_args(argv)

    try:
        settings = FlowSettings()
    except SettingsValidationError as e:
        print(f"Configuration error: {e}", file=sys.stderr)
        return 2

    configure_logging(settings.log_level)

    if args.command == "serve":
        import uvicorn

        from vr_business_flow.server.app import create_app

        server_settings = ServerSettings()
        uvicorn.run(
            create_app(settings=server_settings),
            host=args.host or server_settings.host,
            port=args.port or server_settings.port,
            log_config=None,
        )
        return 0

    orchestrator = FlowOrchestrator(build_in_memory_collaborators(settings), settings=settings)

    try:
        if args.command == "services":
            for category in asyncio.run(_list_services(orchestrator)):
                print(category)
            return 0

        if args.command == "run":
            client_info: dict[str, object] = {
                "name": args.name,
                "businessType": args.business_type,
            }
            if args.specialist:
                client_info["assignedSpecialist"] = args.specialist
            summary = asyncio.run(
                _run_flow(orchestrator, {"source": args.source, "clientInfo": client_info})
            )
            print(json.dumps(summary, indent=2, ensure_ascii=False))
            return 0

        logger.error("Unknown command", extra={"command": args.command})
        return 2

    except ValidationError as e:
        print(str(e), file=sys.stderr)
        return 2

    except EligibilityError as e:
        logger.warning(str(e), extra={"client_id": e.client_id})
        print(str(e), file=sys.stderr)
        return 3

    except FlowError:
        logger.exception("Flow failed")
        return 4

    except Exception:
        logger.exception("Command failed")
        return 1


if __name__ == "__main__":
    raise SystemExit(main())
