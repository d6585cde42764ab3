"""Prophet CLI entry point."""

import argparse
import asyncio
import logging
import sys
from pathlib import Path

from dotenv import load_dotenv
from pydantic import ValidationError

env_file = Path(__file__).parent.parent / ".env"
load_dotenv(env_file)

from prophet import __version__
from prophet.agents.arbitrator import run_arbitrator
from prophet.config import get_settings
from prophet.errors import ProphetError
from prophet.pipeline import run_market_arbitration, run_sweep
from prophet.settlement.engine import SettlementEngine
from prophet.storage.database import dispose_engine, get_engine, get_ledger_store, init_db

# Configure logging
logging.basicConfig(
    level=logging.INFO,
    format="%(asctime)s - %(name)s - %(levelname)s - %(message)s",
    datefmt="%Y-%m-%d %H:%M:%S",
)

logger = logging.getLogger(__name__)


def _init_logfire() -> None:
    """Initialize Logfire if available, without failing commands."""
    try:
        from prophet.observability import initialize_logfire

        initialize_logfire(get_settings())
    except Exception as e:
        logger.warning(f"Failed to initialize Logfire: {e}")


async def _with_engine(coro):
    try:
        return await coro
    finally:
        await dispose_engine()


def cmd_init_db(args: argparse.Namespace) -> int:
    """Create tables and seed the system AI account."""
    try:
        settings = get_settings()
        settings.data_dir.mkdir(parents=True, exist_ok=True)

        async def _init() -> None:
            await init_db(get_engine(settings), settings.arbitration.system_user_id)

        asyncio.run(_with_engine(_init()))
        print(f"\n✓ Database initialized at {settings.database_url}\n")
        return 0

    except Exception as e:
        logger.error(f"Failed to initialize database: {e}")
        print(f"\n❌ Initialization failed: {e}\n")
        return 1


def cmd_config(args: argparse.Namespace) -> int:
    """Display merged configuration."""
    try:
        settings = get_settings()

        print("\n=== Prophet Configuration ===\n")
        print(f"Data Directory: {settings.data_dir}")
        print(f"Environment: {settings.environment}")
        print(f"Database: {settings.database_url.split('@')[-1]}\n")

        print("Settlement:")
        print(f"  Stake Range: {settings.settlement.min_stake} - {settings.settlement.max_stake}")
        print(f"  Max Admin Credit: {settings.settlement.max_admin_credit}\n")

        arb = settings.arbitration
        print("Arbitration:")
        print(f"  Model: {arb.model}")
        print(f"  Search Budget: {arb.max_searches} per market")
        print(f"  Results Per Query: {arb.results_per_query}")
        print(f"  Max Sources Reported: {arb.max_sources}")
        print(f"  Overall Timeout: {arb.timeout_seconds:.0f}s")
        print(f"  Injection Markers: {len(arb.injection_markers)}")
        print(f"  Blacklisted Domains: {len(arb.blacklisted_domains)}\n")

        print("Search:")
        print(f"  Provider: {settings.search.provider}")
        print(f"  Results Per Request: {settings.search.results_per_request}\n")

        print("Scheduler (minutes):")
        print(f"  Arbitration Sweep: {settings.scheduler.arbitration_sweep_minutes}\n")

        print("API Keys:")
        print(f"  OpenAI: {'✓ Set' if settings.openai_api_key else '✗ Not set'}")
        print(f"  Anthropic: {'✓ Set' if settings.anthropic_api_key else '✗ Not set'}")
        print(f"  Exa AI: {'✓ Set' if settings.exa_api_key else '✗ Not set'}")
        print(f"  Google Search: {'✓ Set' if settings.google_search_api_key else '✗ Not set'}")
        print(f"  Logfire: {'✓ Set' if settings.logfire_token else '✗ Not set'}\n")

        return 0

    except ValidationError as e:
        print("\n❌ Configuration Error:\n")
        for error in e.errors():
            print(f"  • {'.'.join(str(x) for x in error['loc'])}: {error['msg']}")
        print()
        return 1
    except Exception as e:
        logger.error(f"Failed to load config: {e}")
        print(f"\n❌ Failed to load configuration: {e}\n")
        return 1


def cmd_arbitrate(args: argparse.Namespace) -> int:
    """Arbitrate one AI market; settle it unless --dry-run."""
    _init_logfire()

    try:
        settings = get_settings()
        print("\n=== AI Arbitration ===\n")
        print(f"Market ID: {args.market_id}\n")

        if args.dry_run:
            async def _dry_run():
                engine = SettlementEngine(get_ledger_store(settings), settings.settlement)
                market = await engine.get_market(args.market_id)
                return await run_arbitrator(market, settings)

            result = asyncio.run(_with_engine(_dry_run()))
            print(f"Verdict (not settled): {result.outcome.value.upper()}")
        else:
            settled = asyncio.run(
                _with_engine(run_market_arbitration(settings, args.market_id))
            )
            result = settled.arbitration
            print(f"✓ Settled {settled.resolution.outcome.value.upper()}")
            print(f"Total Payout: {settled.resolution.total_payout}")
            print(f"Winners: {settled.resolution.winners_count}")

        print(f"Searches Performed: {result.searches_performed}\n")
        print(f"Reasoning:\n{result.reasoning}\n")
        if result.sources:
            print("Sources:")
            for source in result.sources:
                print(f"  • {source.title or source.url} ({source.url})")
            print()
        return 0

    except ProphetError as e:
        print(f"\n❌ {e.code}: {e.message}\n")
        return 1
    except Exception as e:
        logger.error(f"Arbitration failed: {e}", exc_info=True)
        print(f"\n❌ Arbitration failed: {e}\n")
        return 1


def cmd_sweep(args: argparse.Namespace) -> int:
    """Arbitrate every AI market past its deadline once."""
    _init_logfire()

    try:
        print("\n=== Arbitration Sweep ===\n")
        report = asyncio.run(_with_engine(run_sweep(get_settings())))

        print(f"Markets processed: {len(report.entries)}")
        print(f"Resolved: {report.count('resolved')}")
        print(f"Unresolvable: {report.count('unresolvable')}")
        print(f"Rejected: {report.count('rejected')}")
        print(f"Failed: {report.count('failed')}\n")
        for entry in report.entries:
            if entry.status != "resolved":
                print(f"  • {entry.market_id}: {entry.status} ({entry.error_code}) {entry.message}")
        return 0 if report.count("failed") == 0 else 1

    except Exception as e:
        logger.error(f"Sweep failed: {e}", exc_info=True)
        print(f"\n❌ Sweep failed: {e}\n")
        return 1


def cmd_audit(args: argparse.Namespace) -> int:
    """Compare a stored balance against the transaction log."""
    try:
        settings = get_settings()
        engine = SettlementEngine(get_ledger_store(settings), settings.settlement)
        audit = asyncio.run(_with_engine(engine.audit_balance(args.user_id)))

        print(f"\n=== Balance Audit: {audit.user_id} ===\n")
        print(f"Stored Balance: {audit.balance}")
        print(f"Ledger Total: {audit.ledger_total}")
        print(f"Transactions: {audit.transactions}")
        print(f"Consistent: {'✓' if audit.consistent else '✗'}\n")
        return 0 if audit.consistent else 1

    except ProphetError as e:
        print(f"\n❌ {e.code}: {e.message}\n")
        return 1


def cmd_retry_refunds(args: argparse.Namespace) -> int:
    """Re-run missing refunds for a cancelled market."""
    try:
        settings = get_settings()
        engine = SettlementEngine(get_ledger_store(settings), settings.settlement)
        result = asyncio.run(_with_engine(engine.retry_refunds(args.market_id)))

        print(f"\n✓ Refunded {result.refunded_count} stake(s), {result.total_refunded} credits")
        for failure in result.failed_refunds:
            print(f"  • {failure.position_id} ({failure.user_id}, {failure.amount}): {failure.error}")
        print()
        return 0 if not result.failed_refunds else 1

    except ProphetError as e:
        print(f"\n❌ {e.code}: {e.message}\n")
        return 1


def cmd_serve(args: argparse.Namespace) -> int:
    """Start the HTTP API."""
    import uvicorn

    uvicorn.run(
        "prophet.api.server:create_app",
        factory=True,
        host=args.host,
        port=args.port,
        reload=args.reload,
    )
    return 0


def cmd_run(args: argparse.Namespace) -> int:
    """Start the arbitration scheduler."""
    try:
        _init_logfire()

        if args.debug:
            logging.getLogger().setLevel(logging.DEBUG)

        settings = get_settings()

        print("\n=== Prophet Arbitration Scheduler ===\n")
        print(f"Version: {__version__}")
        print(f"Sweep Interval: {settings.scheduler.arbitration_sweep_minutes} min\n")

        if args.once:
            report = asyncio.run(_with_engine(run_sweep(settings)))
            print(f"\nSweep complete: {report.count('resolved')} resolved.\n")
            return 0

        from prophet.scheduler import start_scheduler

        start_scheduler(settings)
        return 0

    except Exception as e:
        logger.error(f"Scheduler failed: {e}", exc_info=True)
        print(f"\n❌ Scheduler failed: {e}\n")
        return 1


def main() -> int:
    parser = argparse.ArgumentParser(
        prog="prophet",
        description="Prophet - peer-to-peer betting with AI arbitration",
    )
    parser.add_argument("--version", action="version", version=f"prophet {__version__}")
    subparsers = parser.add_subparsers(dest="command", required=True)

    init_parser = subparsers.add_parser("init-db", help="Create tables and seed accounts")
    init_parser.set_defaults(func=cmd_init_db)

    config_parser = subparsers.add_parser("config", help="Show merged configuration")
    config_parser.set_defaults(func=cmd_config)

    arbitrate_parser = subparsers.add_parser("arbitrate", help="Arbitrate one AI market")
    arbitrate_parser.add_argument("market_id", help="Market ID")
    arbitrate_parser.add_argument(
        "--dry-run", action="store_true", help="Print the verdict without settling"
    )
    arbitrate_parser.set_defaults(func=cmd_arbitrate)

    sweep_parser = subparsers.add_parser("sweep", help="Arbitrate all due AI markets once")
    sweep_parser.set_defaults(func=cmd_sweep)

    audit_parser = subparsers.add_parser("audit", help="Audit a user's balance")
    audit_parser.add_argument("user_id", help="User ID")
    audit_parser.set_defaults(func=cmd_audit)

    retry_parser = subparsers.add_parser(
        "retry-refunds", help="Retry failed refunds of a cancelled market"
    )
    retry_parser.add_argument("market_id", help="Market ID")
    retry_parser.set_defaults(func=cmd_retry_refunds)

    serve_parser = subparsers.add_parser("serve", help="Start the HTTP API")
    serve_parser.add_argument("--host", default="0.0.0.0")
    serve_parser.add_argument("--port", type=int, default=8000)
    serve_parser.add_argument("--reload", action="store_true")
    serve_parser.set_defaults(func=cmd_serve)

    run_parser = subparsers.add_parser("run", help="Start the arbitration scheduler")
    run_parser.add_argument("--once", action="store_true", help="Run one sweep and exit")
    run_parser.add_argument("--debug", action="store_true", help="Enable debug logging")
    run_parser.set_defaults(func=cmd_run)

    args = parser.parse_args()
    return args.func(args)


if __name__ == "__main__":
    sys.exit(main())
