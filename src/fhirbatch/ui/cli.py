from __future__ import annotations

import argparse
import json
import logging
import sys
from signal import SIGINT, signal
from typing import TYPE_CHECKING

from dotenv import load_dotenv

from fhirbatch.app import run_lab_order
from fhirbatch.config import configure_logging
from fhirbatch.domain.workflow import WorkflowCompleted
from fhirbatch.lab_order import DEFAULT_SKU, LabOrder

if TYPE_CHECKING:
    from collections.abc import Sequence
    from types import FrameType

    from fhirbatch.domain.workflow import WorkflowOutcome

log = logging.getLogger(__name__)


def _parse_args(argv: Sequence[str]) -> argparse.Namespace:
    parser = argparse.ArgumentParser(description="Submit FHIR batch workflows")
    parser.add_argument("-v", "--verbose", action="store_true", help="Enable debug logging")
    subparsers = parser.add_subparsers(dest="command", required=True)

    lab_order = subparsers.add_parser(
        "lab-order",
        help="Create a patient, service request and lab report, then read the results back",
    )
    lab_order.add_argument(
        "--mrn",
        type=str,
        help="Medical record number used for the conditional patient create (random if omitted)",
    )
    lab_order.add_argument(
        "--sku",
        type=str,
        default=DEFAULT_SKU,
        help="Device SKU ordered by the service request (default: %(default)s)",
    )
    return parser.parse_args(list(argv))


def _build_order(args: argparse.Namespace) -> LabOrder:
    if args.mrn is not None and not args.mrn.strip():
        raise ValueError("--mrn must not be blank")
    if not args.sku.strip():
        raise ValueError("--sku must not be blank")
    if args.mrn is None:
        return LabOrder(sku=args.sku.strip())
    return LabOrder(mrn=args.mrn.strip(), sku=args.sku.strip())


def _summarize(outcome: WorkflowOutcome) -> dict[str, object]:
    if isinstance(outcome, WorkflowCompleted):
        return {
            "status": outcome.status,
            "resolved": {str(local): ref.value for local, ref in outcome.graph.mapping.items()},
            "resources": [dict(resource) for resource in outcome.resources],
        }
    return {
        "status": outcome.status,
        "stage": outcome.stage,
        "step": outcome.step,
        "error": type(outcome.error).__name__,
        "entry_index": outcome.entry_index,
        "detail": outcome.detail,
        "retryable": outcome.retryable,
    }


def main(argv: Sequence[str] | None = None) -> None:
    """Main application entry point."""
    args_list = list(argv) if argv is not None else list(sys.argv[1:])
    try:
        parsed_args = _parse_args(args_list)
        order = _build_order(parsed_args)
    except ValueError:
        configure_logging()
        log.exception("CLI validation error")
        sys.exit(2)

    configure_logging(level=logging.DEBUG if parsed_args.verbose else logging.INFO)

    try:
        outcome = run_lab_order(order)
    except Exception:
        log.exception("Fatal error during workflow")
        sys.exit(1)

    print(json.dumps(_summarize(outcome), indent=2, default=str))  # noqa: T201
    if not isinstance(outcome, WorkflowCompleted):
        sys.exit(1)


def sigint_handler(_signal_received: int, _frame: FrameType | None) -> None:
    """Handle SIGINT (Ctrl+C) gracefully."""
    log.info("Closed by user (Ctrl+C)")
    sys.exit(0)


def run() -> None:
    load_dotenv()
    signal(SIGINT, sigint_handler)
    main()


if __name__ == "__main__":
    run()
