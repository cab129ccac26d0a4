"""Operator CLI for approving transactions and inspecting balances."""

from __future__ import annotations

import argparse
import logging
import sys
from collections.abc import Sequence
from pathlib import Path

ROOT = Path(__file__).resolve().parents[1]
if str(ROOT) not in sys.path:
    sys.path.insert(0, str(ROOT))

CLI_ACTOR = "database-cli"


def parse_args(argv: Sequence[str] | None = None) -> argparse.Namespace:
    """Parse CLI arguments."""
    parser = argparse.ArgumentParser(
        description="Approve or reject transactions and inspect user balances.",
    )
    commands = parser.add_subparsers(dest="command", required=True)

    approve = commands.add_parser("approve", help="Approve a pending transaction.")
    approve.add_argument("transaction_id", help="Transaction id.")

    reject = commands.add_parser("reject", help="Reject a pending transaction.")
    reject.add_argument("transaction_id", help="Transaction id.")
    reject.add_argument("reason", nargs="?", default=None, help="Rejection reason.")

    commands.add_parser("pending", help="List pending transactions, oldest first.")

    balance = commands.add_parser("balance", help="Show a user's balance.")
    balance.add_argument("user_id", help="User id (email).")

    history = commands.add_parser("history", help="Show a user's balance history.")
    history.add_argument("user_id", help="User id (email).")
    history.add_argument(
        "--days",
        type=int,
        default=30,
        help="How many days back to show (default: 30).",
    )

    stats = commands.add_parser("stats", help="Show a user's transaction counts.")
    stats.add_argument("user_id", help="User id (email).")

    recompute = commands.add_parser("recompute", help="Rebuild a user's balance.")
    recompute.add_argument("user_id", help="User id (email).")

    commands.add_parser("accrue", help="Run catch-up accrual and today's rewards now.")

    rewards = commands.add_parser(
        "ensure-rewards",
        help="Credit today's ROI on a user's daily-reward deposits.",
    )
    rewards.add_argument("user_id", help="User id (email).")
    return parser.parse_args(argv)


def run(args: argparse.Namespace) -> None:
    """Dispatch one CLI command."""
    from balance_ledger.services.approval_service import ApprovalService
    from balance_ledger.services.earnings_service import EarningsService
    from balance_ledger.services.ledger_service import LedgerService
    from balance_ledger.services.transaction_service import TransactionService
    from balance_ledger.utils.supabase_client import get_service_client

    client = get_service_client()

    if args.command == "approve":
        approved = ApprovalService(client).approve(args.transaction_id, CLI_ACTOR)
        print(f"Approved {approved.kind.value} {approved.amount} for {approved.user_id}")
        print_balance(LedgerService(client).summary(approved.user_id))
    elif args.command == "reject":
        rejected = ApprovalService(client).reject(args.transaction_id, args.reason, CLI_ACTOR)
        print(f"Rejected {rejected.id}: {rejected.rejection_reason}")
    elif args.command == "pending":
        pending = TransactionService(client).list_pending()
        print(f"{len(pending)} pending transaction(s):")
        for tx in pending:
            print(
                f"{tx.id}  {tx.submitted_at:%Y-%m-%d %H:%M}  "
                f"{tx.user_id}  {tx.kind.value}  {tx.amount}"
            )
    elif args.command == "balance":
        print_balance(LedgerService(client).summary(args.user_id))
    elif args.command == "history":
        entries = LedgerService(client).history(args.user_id, days=args.days)
        print(f"{len(entries)} entr(y/ies) in the last {args.days} day(s):")
        for entry in entries:
            print(
                f"{entry.date:%Y-%m-%d %H:%M}  {entry.action}  "
                f"{entry.amount}  -> {entry.balance_after}"
            )
    elif args.command == "stats":
        stats = TransactionService(client).stats(args.user_id)
        print(
            f"total={stats.total} pending={stats.pending} "
            f"approved={stats.approved} rejected={stats.rejected}"
        )
        for kind, count in sorted(stats.by_kind.items()):
            print(f"  {kind}: {count}")
    elif args.command == "recompute":
        record = LedgerService(client).recompute(args.user_id)
        print_balance(record)
    elif args.command == "accrue":
        service = EarningsService(client)
        print(f"catch-up: {service.process_daily_earnings().as_dict()}")
        print(f"today: {service.ensure_daily_rewards_for_today().as_dict()}")
    elif args.command == "ensure-rewards":
        service = EarningsService(client)
        report = service.ensure_transaction_rewards(args.user_id)
        print(f"rewards: {report.as_dict()}")
        print_balance(service.ledger.summary(args.user_id))


def print_balance(balance) -> None:
    """Print balance figures in a readable block."""
    print(f"User:        {balance.user_id}")
    print(f"Balance:     {balance.current_balance}")
    print(f"Deposits:    {balance.total_deposits}")
    print(f"Earnings:    {balance.total_earnings}")
    print(f"Withdrawals: {balance.total_withdrawals}")


def main(argv: Sequence[str] | None = None) -> int:
    """CLI entry point."""
    args = parse_args(argv)
    logging.basicConfig(
        level=logging.INFO,
        format="%(asctime)s %(levelname)s [%(name)s] %(message)s",
    )

    from balance_ledger.utils.errors import AppError

    try:
        run(args)
    except AppError as exc:
        print(f"Error [{exc.code}]: {exc.message}", file=sys.stderr)
        return 1
    return 0


if __name__ == "__main__":
    raise SystemExit(main())
