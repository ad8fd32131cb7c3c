"""Command-line entrypoint for the staking portfolio check."""
from __future__ import annotations

import argparse
import logging
import sys
from datetime import datetime, timezone
from pathlib import Path

from staking_ledger.application.dto import PortfolioCheckRequest
from staking_ledger.application.use_cases import PortfolioCheckUseCase, PortfolioContext
from staking_ledger.config import SETTINGS, load_thresholds
from staking_ledger.errors import StakingLedgerError
from staking_ledger.infrastructure.repositories.file_repositories import (
    FileRewardEventRepository,
    FileStatementRepository,
    FileValidatorRepository,
)
from staking_ledger.infrastructure.storage.snapshot_store import load_snapshot, save_snapshot

logger = logging.getLogger(__name__)


def parse_args(argv: list[str]) -> argparse.Namespace:
    parser = argparse.ArgumentParser(
        description="Summarize a staking portfolio, detect exceptions and reconcile custodian statements"
    )
    parser.add_argument("validators", type=Path, help="Path to validator export (CSV or Excel)")
    parser.add_argument("rewards", type=Path, help="Path to reward event export (CSV or Excel)")
    parser.add_argument("--statements", type=Path, help="Path to custodian statements (CSV or Excel)")
    parser.add_argument("--previous-snapshot", type=Path, help="JSON snapshot of the previous run")
    parser.add_argument("--save-snapshot", type=Path, help="Write this run's snapshot to the given JSON path")
    parser.add_argument("--thresholds", type=Path, help="JSON file with exception detection thresholds")
    parser.add_argument("--as-of", type=str, help="Valuation timestamp (ISO 8601, default now)")
    parser.add_argument(
        "--window-days",
        type=int,
        default=SETTINGS.trailing_window_days,
        help="Trailing yield window in days",
    )
    parser.add_argument("-v", "--verbose", action="store_true", help="Enable debug logging")
    return parser.parse_args(argv)


def _as_of(value: str | None) -> datetime:
    if not value:
        return datetime.now(timezone.utc)
    parsed = datetime.fromisoformat(value)
    if parsed.tzinfo is None:
        parsed = parsed.replace(tzinfo=timezone.utc)
    return parsed


def main(argv: list[str] | None = None) -> int:
    args = parse_args(argv if argv is not None else sys.argv[1:])
    logging.basicConfig(
        level=logging.DEBUG if args.verbose else logging.INFO,
        format="%(asctime)s %(levelname)s %(name)s %(message)s",
    )

    try:
        thresholds = load_thresholds(args.thresholds) if args.thresholds else None
        previous = load_snapshot(args.previous_snapshot) if args.previous_snapshot else None
        context = PortfolioContext(
            validator_repository=FileValidatorRepository(args.validators),
            reward_repository=FileRewardEventRepository(args.rewards),
            statement_repository=FileStatementRepository(args.statements) if args.statements else None,
        )
        request = PortfolioCheckRequest(
            as_of=_as_of(args.as_of),
            thresholds=thresholds,
            previous_snapshot=previous,
            window_days=args.window_days,
        )
        response = PortfolioCheckUseCase(context).execute(request)
    except (StakingLedgerError, OSError, ValueError) as exc:
        logger.error("Portfolio check failed: %s", exc)
        return 2

    summary = response.summary
    print("Portfolio Summary")
    print("=================")
    print(f"As of: {summary.as_of.isoformat()}")
    print(f"Total value: {summary.total_value.to_eth()} ETH ({summary.total_value} gwei)")
    print(f"Validators: {summary.validator_count}")
    print(f"Trailing APY: {summary.trailing_apy * 100:.2f}%")
    print(f"Previous period APY: {summary.previous_period_apy * 100:.2f}%")
    for name, amount in summary.state_buckets.as_dict().items():
        print(f"  {name}: {amount.to_eth()} ETH")

    print("\nCustodians:")
    for allocation in summary.custodian_breakdown:
        print(
            f"- {allocation.custodian_name}: {allocation.value.to_eth()} ETH "
            f"({allocation.percentage * 100:.2f}%), APY {allocation.trailing_apy * 100:.2f}%, "
            f"{allocation.validator_count} validators"
        )

    if response.exceptions:
        print("\nExceptions detected:")
        for exception in response.exceptions:
            print(f"- [{exception.severity.value}] {exception.type.value}: {exception.title}")
    elif previous is not None:
        print("\nNo exceptions detected.")

    if response.reconciliation:
        print("\nReconciliation:")
        for source, report in response.reconciliation.items():
            print(
                f"- {source}: {report.status.value} (variance {report.variance} gwei, "
                f"{report.variance_percentage * 100:.4f}%)"
            )

    if args.save_snapshot:
        save_snapshot(summary.snapshot(), args.save_snapshot)
        logger.info("Saved snapshot to %s", args.save_snapshot)

    return 1 if response.requires_attention() else 0


if __name__ == "__main__":  # pragma: no cover
    raise SystemExit(main())
