"""
CLI main entry point.
"""

import argparse
import json
import logging
import sys
from dataclasses import dataclass
from datetime import date
from pathlib import Path

from ..bank_client import BankClient, parse_date
from ..config import Config, create_default_config, load_config
from ..suppliers import (
    DEFAULT_EXCLUDED_KEYWORDS,
    SupplierLearner,
    SupplierRegistry,
    SupplierResolver,
    audit_registry,
)

logger = logging.getLogger(__name__)


def setup_logging(verbose: bool = False) -> None:
    """Configure logging."""
    level = logging.DEBUG if verbose else logging.INFO
    logging.basicConfig(
        level=level,
        format="%(asctime)s | %(levelname)-8s | %(name)s | %(message)s",
        datefmt="%Y-%m-%d %H:%M:%S",
    )


def _date_arg(value: str) -> date:
    parsed = parse_date(value)
    if parsed is None:
        raise argparse.ArgumentTypeError(
            f"invalid date '{value}' (expected YYYY-MM-DD, DD/MM/YYYY or DD-MM-YYYY)"
        )
    return parsed


def _add_period_arguments(parser: argparse.ArgumentParser) -> None:
    parser.add_argument("--start", type=_date_arg, help="First value date (inclusive)")
    parser.add_argument("--end", type=_date_arg, help="Last value date (inclusive)")


def create_cli() -> argparse.ArgumentParser:
    """Create CLI argument parser."""
    parser = argparse.ArgumentParser(
        prog="supplier-ledger",
        description="Fetch Billit bank transactions and resolve them to suppliers",
    )

    parser.add_argument(
        "-c",
        "--config",
        type=Path,
        default=Path("config.yaml"),
        help="Path to config file (default: config.yaml)",
    )
    parser.add_argument(
        "-v",
        "--verbose",
        action="store_true",
        help="Enable verbose logging",
    )

    subparsers = parser.add_subparsers(dest="command", help="Command to run")

    # fetch command
    fetch_parser = subparsers.add_parser("fetch", help="List bank transactions")
    fetch_parser.add_argument("--limit", type=int, help="Maximum transactions to fetch")
    fetch_parser.add_argument("--json", action="store_true", help="Print transactions as JSON")
    _add_period_arguments(fetch_parser)

    # stats command
    stats_parser = subparsers.add_parser("stats", help="Show credit/debit totals")
    stats_parser.add_argument(
        "--month", action="store_true", help="Current month (ignores --start/--end)"
    )
    _add_period_arguments(stats_parser)

    # search command
    search_parser = subparsers.add_parser("search", help="Find transactions for a supplier")
    search_parser.add_argument("term", help="Supplier name or alias")
    _add_period_arguments(search_parser)

    # learn command
    learn_parser = subparsers.add_parser(
        "learn", help="Scan transactions and learn unknown suppliers"
    )
    _add_period_arguments(learn_parser)

    # unknown command
    unknown_parser = subparsers.add_parser(
        "unknown", help="Report debits that match no known supplier"
    )
    unknown_parser.add_argument(
        "--exclude",
        action="append",
        default=[],
        help="Extra keyword to ignore (repeatable)",
    )
    unknown_parser.add_argument("--top", type=int, default=20, help="Groups to show (default: 20)")
    _add_period_arguments(unknown_parser)

    # suppliers command
    suppliers_parser = subparsers.add_parser("suppliers", help="Manage the supplier registry")
    suppliers_sub = suppliers_parser.add_subparsers(dest="suppliers_command")
    suppliers_sub.add_parser("list", help="List known suppliers")
    add_parser = suppliers_sub.add_parser("add", help="Add a supplier by hand")
    add_parser.add_argument("name", help="Full supplier name (e.g. 'KBC BANK NV')")
    add_parser.add_argument(
        "--alias",
        dest="aliases",
        action="append",
        default=[],
        help="Extra alias (repeatable)",
    )
    remove_parser = suppliers_sub.add_parser("remove", help="Remove a supplier")
    remove_parser.add_argument("key", help="Canonical supplier key")

    # audit command
    subparsers.add_parser("audit", help="Report generic, short or shared aliases")

    # init-config command
    subparsers.add_parser("init-config", help="Write a default config file")

    return parser


@dataclass
class Services:
    """Objects wired together for one CLI run."""

    registry: SupplierRegistry
    resolver: SupplierResolver
    learner: SupplierLearner
    bank: BankClient


def build_services(config: Config) -> Services:
    """Composition root: build registry, resolver, learner and bank client."""
    registry = SupplierRegistry(config.suppliers.registry_path)
    resolver = SupplierResolver(registry)
    learner = SupplierLearner(registry, resolver)
    bank = BankClient(
        base_url=config.billit.api_url,
        api_key=config.billit.api_key,
        party_id=config.billit.party_id,
        learner=learner if config.suppliers.auto_learn else None,
        resolver=resolver,
        page_size=config.retrieval.page_size,
        page_delay=config.retrieval.page_delay_seconds,
        cache_ttl=config.retrieval.cache_ttl_seconds,
        timeout=config.billit.timeout_seconds,
        max_retries=config.billit.max_retries,
    )
    return Services(registry=registry, resolver=resolver, learner=learner, bank=bank)


def _check_bank_config(config: Config) -> bool:
    errors = config.validate()
    if errors:
        print("❌ Invalid configuration:")
        for error in errors:
            print(f"   - {error}")
        return False
    return True


def _format_amount(amount: float, currency: str = "EUR") -> str:
    return f"{amount:,.2f} {currency}"


def cmd_fetch(
    services: Services,
    limit: int | None,
    start: date | None,
    end: date | None,
    as_json: bool = False,
) -> int:
    """List transactions."""
    if start and end:
        transactions = services.bank.fetch_by_period(start, end)
        if limit:
            transactions = transactions[:limit]
    else:
        transactions = services.bank.fetch_all(limit=limit, start=start, end=end)

    if as_json:
        print(json.dumps([tx.to_dict() for tx in transactions], indent=2, ensure_ascii=False))
        return 0

    for tx in transactions:
        arrow = "⬆️ " if tx.is_credit else "⬇️ "
        print(f"  {arrow} {tx.date[:10]}  {_format_amount(tx.amount, tx.currency):>16}  {tx.description}")

    print(f"\n✓ {len(transactions)} transaction(s)")
    return 0


def _period_label(start: date | None, end: date | None) -> str:
    if start and end:
        return f"{start} → {end}"
    if start:
        return f"from {start}"
    if end:
        return f"until {end}"
    return "all cached transactions"


def cmd_stats(services: Services, month: bool, start: date | None, end: date | None) -> int:
    """Show credit/debit totals."""
    if month:
        start, end = BankClient.month_bounds()
    stats = services.bank.get_stats(start, end)

    period = _period_label(start, end)
    print(f"\n📊 Bank statistics ({period})")
    print("=" * 40)
    print(f"  Credits:   {_format_amount(stats.credits):>16}  ({stats.credit_count})")
    print(f"  Debits:    {_format_amount(stats.debits):>16}  ({stats.debit_count})")
    print(f"  Balance:   {_format_amount(stats.balance):>16}")
    print()
    return 0


def cmd_search(services: Services, term: str, start: date | None, end: date | None) -> int:
    """Find transactions for a supplier."""
    name = services.resolver.display_name(term)
    transactions = services.bank.search_by_description(term, start, end)

    print(f"🔍 {name}: {len(transactions)} transaction(s)")
    total = 0.0
    for tx in transactions:
        total += tx.amount
        print(f"  {tx.date[:10]}  {_format_amount(tx.amount, tx.currency):>16}  {tx.description}")
    if transactions:
        print(f"\n  Total: {_format_amount(total)}")
    return 0


def cmd_learn(services: Services, start: date | None, end: date | None) -> int:
    """Retroactively learn suppliers from fetched transactions."""
    print("🔍 Scanning transactions for unknown suppliers...")

    # Learning happens explicitly below, not as a side effect of the fetch
    services.bank.learner = None
    if start and end:
        transactions = services.bank.fetch_by_period(start, end)
    else:
        transactions = services.bank.fetch_all(start=start, end=end)

    report = services.learner.learn_from_transactions(transactions)

    for key in report.learned_keys:
        print(f"  🧑‍🎓 Learned: {key}")
    print(f"\n✓ Learned: {report.learned}, Already known: {report.already_known}, "
          f"No supplier found: {report.not_extracted}")
    print(f"  Suppliers in registry: {len(services.registry)}")
    return 0


def cmd_unknown(
    services: Services,
    start: date | None,
    end: date | None,
    exclude: list[str],
    top: int,
) -> int:
    """Report debits that match no known supplier."""
    # Reported suppliers must stay unregistered
    services.bank.learner = None
    if start and end:
        transactions = services.bank.fetch_by_period(start, end)
    else:
        transactions = services.bank.fetch_all(start=start, end=end)

    groups = services.learner.detect_unknown(
        transactions, [*DEFAULT_EXCLUDED_KEYWORDS, *exclude]
    )
    print(f"📊 {len(transactions)} transaction(s) analysed")
    if not groups:
        print("✅ Every debit matches a known supplier")
        return 0

    print(f"❓ {len(groups)} potential new supplier(s)\n")
    for index, group in enumerate(groups[:top], 1):
        print(f"{index}. 💰 {_format_amount(group.total_amount)} ({group.count} transaction(s))")
        print(f"   Description: {group.description[:80]}")
        if group.candidate:
            print(f"   🏷️  Candidate: {group.candidate}")
    if len(groups) > top:
        print(f"\n  ... and {len(groups) - top} more")
    print("\n💡 Add one with: supplier-ledger suppliers add NAME")
    return 0


def cmd_suppliers(services: Services, action: str | None, args: argparse.Namespace) -> int:
    """Manage the supplier registry."""
    if action == "add":
        if services.learner.add_manual(args.name, args.aliases):
            print(f"✅ Supplier '{args.name}' added")
            return 0
        print(f"❌ Supplier '{args.name}' is already known or invalid")
        return 1

    if action == "remove":
        if services.learner.remove(args.key):
            print(f"✅ Supplier '{args.key}' removed")
            return 0
        print(f"❌ Supplier not found: '{args.key}'")
        return 1

    suppliers = services.registry.all()
    if not suppliers:
        print("📋 No suppliers configured.")
        return 0

    print(f"📋 Suppliers ({len(suppliers)})\n")
    for key, entry in suppliers.items():
        aliases = ", ".join(entry.aliases[:3])
        if len(entry.aliases) > 3:
            aliases += "..."
        print(f"  • {services.resolver.display_name(entry.primary_alias)}")
        print(f"    └ Key: {key}")
        print(f"    └ Aliases: {aliases}")
    return 0


def cmd_audit(services: Services) -> int:
    """Report questionable aliases."""
    issues = audit_registry(services.registry)
    if not issues:
        print("✅ No alias issues found")
        return 0

    print(f"⚠️  {len(issues)} alias issue(s):\n")
    for issue in issues:
        print(f"  {issue}")
    return 1


def cmd_init_config(config_path: Path) -> int:
    """Write a default config file."""
    if config_path.exists():
        print(f"❌ {config_path} already exists")
        return 1
    create_default_config(config_path)
    print(f"✓ Default configuration written to {config_path}")
    return 0


def main(args: list[str] | None = None) -> int:
    """Main entry point."""
    parser = create_cli()
    parsed = parser.parse_args(args)

    setup_logging(parsed.verbose)

    if not parsed.command:
        parser.print_help()
        return 1

    if parsed.command == "init-config":
        return cmd_init_config(parsed.config)

    # Load config
    try:
        config = load_config(parsed.config)
    except Exception as e:
        print(f"❌ Failed to load config: {e}")
        return 1

    services = build_services(config)

    # Route to command
    if parsed.command == "suppliers":
        return cmd_suppliers(services, parsed.suppliers_command, parsed)
    elif parsed.command == "audit":
        return cmd_audit(services)

    if not _check_bank_config(config):
        return 1

    if parsed.command == "fetch":
        return cmd_fetch(services, parsed.limit, parsed.start, parsed.end, parsed.json)
    elif parsed.command == "stats":
        return cmd_stats(services, parsed.month, parsed.start, parsed.end)
    elif parsed.command == "search":
        return cmd_search(services, parsed.term, parsed.start, parsed.end)
    elif parsed.command == "learn":
        return cmd_learn(services, parsed.start, parsed.end)
    elif parsed.command == "unknown":
        return cmd_unknown(services, parsed.start, parsed.end, parsed.exclude, parsed.top)
    else:
        parser.print_help()
        return 1


if __name__ == "__main__":
    sys.exit(main())
