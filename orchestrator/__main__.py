"""
CLI entry point for the trading arena.

Usage:
    python -m orchestrator init [--models claude,gemini] [--modes MONK_MODE]
    python -m orchestrator run [--dry-run] [--model ID]
    python -m orchestrator revalue             # Mark to market and re-rank
    python -m orchestrator snapshot            # Record today's daily snapshot
    python -m orchestrator leaderboard [--mode MODE]
    python -m orchestrator providers [--test]  # Backend availability / connectivity
"""

from __future__ import annotations

import argparse
import json
import logging

from config.settings import settings
from ledger.analytics import build_leaderboard
from ledger.database import ArenaDatabase
from ledger.models import ModeCode
from ledger.valuation import PortfolioValuator
from orchestrator.competition import build_aggregator, init_competition, record_snapshot
from orchestrator.market_hours import MarketHours
from orchestrator.session import TradingSession
from providers.router import ProviderRouter


def main():
    parser = argparse.ArgumentParser(description="AI Trading Arena CLI")
    sub = parser.add_subparsers(dest="command")

    init = sub.add_parser("init", help="Create the competition and its participants")
    init.add_argument("--models", type=str, default=None, help="Comma-separated model ids")
    init.add_argument("--modes", type=str, default=None, help="Comma-separated mode codes")

    run = sub.add_parser("run", help="Run one trading session")
    run.add_argument("--dry-run", action="store_true", help="Decide but do not trade")
    run.add_argument("--model", type=str, default=None, help="Only this model id")

    sub.add_parser("revalue", help="Mark holdings to market and re-rank")
    sub.add_parser("snapshot", help="Record today's daily snapshot")

    lb = sub.add_parser("leaderboard", help="Show standings and analytics")
    lb.add_argument("--mode", type=str, default=None, choices=[m.value for m in ModeCode])

    prov = sub.add_parser("providers", help="Show AI backend availability")
    prov.add_argument("--test", action="store_true", help="Send a connectivity prompt to each")

    args = parser.parse_args()
    logging.basicConfig(
        level=settings.log_level,
        format="%(asctime)s %(levelname)s %(name)s: %(message)s",
    )

    if args.command is None:
        parser.print_help()
        return

    db = ArenaDatabase(settings.db_path)
    router = ProviderRouter(settings)

    if args.command == "init":
        _cmd_init(db, router, args.models, args.modes)
    elif args.command == "run":
        _cmd_run(db, router, args.dry_run, args.model)
    elif args.command == "revalue":
        _cmd_revalue(db)
    elif args.command == "snapshot":
        _cmd_snapshot(db)
    elif args.command == "leaderboard":
        _cmd_leaderboard(db, ModeCode(args.mode) if args.mode else None)
    elif args.command == "providers":
        _cmd_providers(router, args.test)


def _split(value: str | None) -> list[str] | None:
    if not value:
        return None
    return [v.strip() for v in value.split(",") if v.strip()]


def _cmd_init(db: ArenaDatabase, router: ProviderRouter, models: str | None, modes: str | None):
    mode_codes = [ModeCode(m.upper()) for m in _split(modes) or []] or None
    config, created = init_competition(db, settings, router, _split(models), mode_codes)
    print(f"Competition: {config.competition_name}")
    print(f"  Window: {config.start_date:%Y-%m-%d} → {config.end_date:%Y-%m-%d}")
    print(f"  Capital: {settings.currency}{config.initial_capital:,.2f} | fee {config.trading_fee_pct}%")
    print(f"New participants: {len(created)}")
    for p in created:
        print(f"  #{p.id} {p.display_name} [{p.mode.value}]")


def _cmd_run(db: ArenaDatabase, router: ProviderRouter, dry_run: bool, model: str | None):
    session = TradingSession(db, router, build_aggregator(settings), settings)
    report = session.run(dry_run=dry_run, single_model=model)
    print(json.dumps(report.to_dict(), indent=2))


def _cmd_revalue(db: ArenaDatabase):
    prices = build_aggregator(settings).build_snapshot().prices
    participants = PortfolioValuator(db).update_all(prices)
    for p in sorted(participants, key=lambda p: (p.mode.value, p.rank or 0)):
        print(
            f"{p.mode.value:<22} #{p.rank} {p.display_name:<10} "
            f"{settings.currency}{p.portfolio_value:,.2f} ({p.pnl_pct:+.2f}%)"
        )


def _cmd_snapshot(db: ArenaDatabase):
    snapshots = record_snapshot(db, build_aggregator(settings), MarketHours.from_settings(settings))
    print(f"Recorded {len(snapshots)} snapshots")


def _cmd_leaderboard(db: ArenaDatabase, mode: ModeCode | None):
    entries = build_leaderboard(db, mode)
    if not entries:
        print("No participants. Run `python -m orchestrator init` first.")
        return
    current_mode = None
    for e in entries:
        if e.mode != current_mode:
            current_mode = e.mode
            print(f"\n## {e.mode.value}")
        sharpe = f"{e.sharpe_ratio:.2f}" if e.sharpe_ratio is not None else "-"
        print(
            f"#{e.rank or '-'} {e.display_name:<10} {settings.currency}{e.portfolio_value:>11,.2f} "
            f"{e.pnl_pct:+7.2f}% | trades {e.total_trades:>3} | win {e.win_rate:5.1f}% "
            f"| maxDD {e.max_drawdown_pct:5.2f}% | sharpe {sharpe}"
        )


def _cmd_providers(router: ProviderRouter, test: bool):
    tested = {r.model_id: r.response for r in router.test_all()} if test else {}
    for status in router.status():
        line = f"{status.model_id:<10} {status.name:<10} {status.model:<32} "
        line += "available" if status.available else "not configured"
        response = tested.get(status.model_id)
        if response is not None:
            line += (
                f" | OK {response.latency_ms}ms" if response.success
                else f" | FAILED: {response.error}"
            )
        print(line)


if __name__ == "__main__":
    main()
