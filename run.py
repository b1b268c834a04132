#!/usr/bin/env python3
"""
Investment Ledger Engine - command line interface
=================================================

Loads a JSON scenario (currency ledgers, stock transactions, splits and
optional market rates/prices) into an in-memory repository and reports on it.

Usage:
    python run.py scenario.json positions --portfolio P1 --as-of 2024-06-30
    python run.py scenario.json ledger --ledger USD-1
    python run.py scenario.json price --ledger USD-1 --amount 250 --date 2024-03-01
    python run.py scenario.json buy --portfolio P1 --ledger USD-1 --ticker AAPL \\
        --shares 10 --price 180 --date 2024-03-01 --action top_up
    python run.py scenario.json returns --portfolio P1 --start 2024-01-01 --end 2024-12-31
"""

import argparse
import json
import logging
import sys
from pathlib import Path
from typing import Optional

from config.constants import VERSION
from config.settings import Settings, configure_system
from data.models.stock_transaction import TransactionType
from data.repositories import InMemoryRepository, RepositoryError
from display.console_output import print_error, print_header, print_success, print_warning
from display.table_formatter import TableFormatter
from financial.balance_resolver import BalanceAction
from financial.currency_ledger import CurrencyLedgerCostEngine
from financial.errors import CostBasisError
from market_data import CachedRateProvider, FallbackRateProvider, RateProvider, StaticRateProvider, YahooRateProvider
from portfolio.performance_service import PerformanceService
from portfolio.transaction_service import TransactionRequest, TransactionService
from utils.log_handler import get_log_handler, setup_logging
from utils.timezone_utils import parse_date, today_in_home_timezone

logger = logging.getLogger(__name__)


def parse_command_line_arguments(argv=None) -> argparse.Namespace:
    """Parse command-line arguments.

    Returns:
        Parsed command-line arguments
    """
    parser = argparse.ArgumentParser(
        description="Investment Ledger Engine - multi-currency cost basis and returns",
        formatter_class=argparse.RawDescriptionHelpFormatter,
    )
    parser.add_argument('scenario', help='Path to the JSON scenario file')
    parser.add_argument('--config', type=str, default=None, help='Path to configuration file')
    parser.add_argument('--online', action='store_true',
                        help='Fall back to Yahoo Finance for rates and prices missing from the scenario')
    parser.add_argument('--format', choices=['display', 'json'], default='display', dest='output_format')
    parser.add_argument('--debug', action='store_true', help='Enable debug logging')
    parser.add_argument('--version', action='version', version=f'Investment Ledger Engine {VERSION}')

    subparsers = parser.add_subparsers(dest='command', required=True)

    positions = subparsers.add_parser('positions', help='Show portfolio positions')
    positions.add_argument('--portfolio', required=True)
    positions.add_argument('--as-of', default=None)

    ledger = subparsers.add_parser('ledger', help='Show a currency ledger summary')
    ledger.add_argument('--ledger', required=True)
    ledger.add_argument('--as-of', default=None)

    price = subparsers.add_parser('price', help='Price a foreign purchase against a ledger')
    price.add_argument('--ledger', required=True)
    price.add_argument('--amount', required=True)
    price.add_argument('--date', required=True)

    buy = subparsers.add_parser('buy', help='Record a ledger-funded buy and show the result')
    buy.add_argument('--portfolio', required=True)
    buy.add_argument('--ledger', default=None)
    buy.add_argument('--ticker', required=True)
    buy.add_argument('--shares', required=True)
    buy.add_argument('--price', required=True)
    buy.add_argument('--fees', default='0')
    buy.add_argument('--date', required=True)
    buy.add_argument('--action', choices=[a.value for a in BalanceAction], default=None)

    returns = subparsers.add_parser('returns', help='Show XIRR and Modified Dietz returns')
    returns.add_argument('--portfolio', required=True)
    returns.add_argument('--start', required=True)
    returns.add_argument('--end', required=True)
    returns.add_argument('--ledger', default=None)

    return parser.parse_args(argv)


def build_rate_provider(scenario: dict, settings: Settings, online: bool) -> RateProvider:
    """Rates and prices from the scenario, optionally backed by Yahoo Finance."""
    provider: RateProvider = StaticRateProvider.from_dict(scenario.get('market', {}))
    if online and settings.get('market_data.primary_source') == 'yahoo':
        provider = FallbackRateProvider([provider, YahooRateProvider()])
    if settings.get('market_data.cache_enabled', True):
        provider = CachedRateProvider.from_settings(provider, settings)
    return provider


def run_command(args: argparse.Namespace, settings: Settings, repository: InMemoryRepository,
                rate_provider: RateProvider) -> None:
    formatter = TableFormatter(home_currency=settings.get_home_currency())
    json_output: Optional[str] = None

    if args.command == 'positions':
        as_of = parse_date(args.as_of) if args.as_of else today_in_home_timezone()
        service = PerformanceService(repository, settings, rate_provider)
        json_output = formatter.create_positions_table(
            service.positions_frame(args.portfolio, as_of), args.output_format
        )

    elif args.command == 'ledger':
        as_of = parse_date(args.as_of) if args.as_of else None
        summary = CurrencyLedgerCostEngine().summarize(repository.get_ledger_events(args.ledger), as_of)
        json_output = formatter.create_ledger_table(
            args.ledger, repository.get_ledger_currency(args.ledger), summary, args.output_format
        )

    elif args.command == 'price':
        service = TransactionService(repository, rate_provider, settings)
        pricing = service.price_foreign_purchase(args.ledger, args.amount, parse_date(args.date))
        json_output = formatter.create_pricing_table(
            pricing.rate, pricing.source.value, pricing.breakdown, args.output_format
        )

    elif args.command == 'buy':
        service = TransactionService(repository, rate_provider, settings)
        transaction = service.create_stock_transaction(TransactionRequest(
            portfolio_id=args.portfolio,
            transaction_date=args.date,
            ticker=args.ticker,
            transaction_type=TransactionType.BUY,
            shares=args.shares,
            price_per_share=args.price,
            fees=args.fees,
            currency_ledger_id=args.ledger,
            balance_action=BalanceAction(args.action) if args.action else None,
        ))
        if args.output_format == 'json':
            json_output = json.dumps(transaction.to_dict(), indent=2)
        else:
            print_success(
                f"Bought {transaction.shares} {transaction.ticker} at rate {transaction.exchange_rate} "
                f"(cost {transaction.total_cost_home:,.2f} {settings.get_home_currency()})"
            )
        if args.ledger:
            summary = CurrencyLedgerCostEngine().summarize(repository.get_ledger_events(args.ledger))
            if args.output_format == 'display':
                formatter.create_ledger_table(args.ledger, repository.get_ledger_currency(args.ledger), summary)

    elif args.command == 'returns':
        service = PerformanceService(repository, settings, rate_provider)
        results = service.returns_summary(
            args.portfolio, parse_date(args.start), parse_date(args.end), ledger_id=args.ledger
        )
        json_output = formatter.create_returns_table(results, args.output_format)

    if json_output is not None:
        print(json_output)


def main(argv=None) -> int:
    """Main entry point.

    Returns:
        Process exit code
    """
    args = parse_command_line_arguments(argv)

    try:
        settings = configure_system(args.config)
        if args.debug:
            settings.set('logging.level', 'DEBUG')
        setup_logging(settings, console=args.debug)

        if args.output_format == 'display':
            print_header(f"Investment Ledger Engine {VERSION}")

        scenario_path = Path(args.scenario)
        with open(scenario_path, 'r', encoding='utf-8') as f:
            scenario = json.load(f)
        repository = InMemoryRepository.from_dict(scenario)
        rate_provider = build_rate_provider(scenario, settings, args.online)

        run_command(args, settings, repository, rate_provider)

    except KeyboardInterrupt:
        print_warning("Operation cancelled by user")
        return 0

    except FileNotFoundError as e:
        print_error(f"Scenario file not found: {e.filename}")
        return 1

    except (ValueError, json.JSONDecodeError) as e:
        print_error(f"Invalid input: {e}")
        return 1

    except RepositoryError as e:
        print_error(f"Data access error: {e}")
        return 1

    except CostBasisError as e:
        print_error(str(e))
        return 1

    warnings = get_log_handler().get_logs(level='WARNING')
    if warnings and args.output_format == 'display':
        for record in warnings[-5:]:
            print_warning(record['message'])

    return 0


if __name__ == "__main__":
    sys.exit(main())
