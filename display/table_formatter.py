"""Table formatting module for ledger and portfolio reports.

This module renders positions, currency ledger state, purchase pricing and
return results as Rich tables, or as JSON for scripting.
"""

import json
from decimal import Decimal
from typing import Any, Dict, List, Optional

import pandas as pd
from rich.console import Console
from rich.table import Table

from data.models.lifo_layer import LayerConsumption
from financial.currency_ledger import LedgerSummary
from financial.errors import ReturnResult
from .console_output import get_console, format_money_display, _safe_emoji


def _pnl_markup(value: Optional[Decimal], text: str) -> str:
    if value is None:
        return "[dim]N/A[/dim]"
    if value > 0:
        return f"[bold green]{text}[/bold green]"
    if value < 0:
        return f"[bold red]{text}[/bold red]"
    return f"[dim]{text}[/dim]"


def _json_default(value: Any) -> Any:
    if isinstance(value, Decimal):
        return str(value)
    if hasattr(value, 'isoformat'):
        return value.isoformat()
    return str(value)


class TableFormatter:
    """Renders report data to the console or to JSON.

    Args:
        console: Rich console to print to (defaults to the shared console)
        home_currency: Currency code used for home-currency columns
    """

    def __init__(self, console: Optional[Console] = None, home_currency: str = "TWD"):
        self.console = console or get_console()
        self.home_currency = home_currency

    def create_positions_table(self, positions: pd.DataFrame, output_format: str = "display") -> Optional[str]:
        """Render the output of ``PerformanceService.positions_frame``.

        Returns:
            JSON string if output_format is "json", None otherwise
        """
        if output_format == "json":
            return json.dumps({"positions": positions.to_dict(orient="records")}, indent=2, default=_json_default)

        table = Table(title=f"{_safe_emoji('📊')} Positions", show_header=True, header_style="bold magenta")
        table.add_column("Ticker", style="cyan", no_wrap=True)
        table.add_column("Ccy", style="dim")
        table.add_column("Shares", justify="right", style="bright_white")
        table.add_column("Avg Cost", justify="right", style="white")
        table.add_column(f"Avg Cost ({self.home_currency})", justify="right", style="yellow")
        table.add_column(f"Cost ({self.home_currency})", justify="right", style="yellow")
        table.add_column("Price", justify="right", style="white")
        table.add_column(f"Value ({self.home_currency})", justify="right", style="bright_yellow")
        table.add_column("Unrealized P&L", justify="right", style="magenta")

        for row_index, row in enumerate(positions.to_dict(orient="records")):
            row_style = "on grey11" if row_index % 2 == 1 else None
            pnl = row.get('unrealized_pnl')
            pct = row.get('unrealized_pct')
            pnl_text = f"{pnl:,.2f} ({pct:.2f}%)" if pnl is not None and pct is not None else "N/A"
            price = row.get('current_price')
            value = row.get('market_value_home')
            table.add_row(
                row['ticker'],
                row['currency'],
                f"{row['shares']:,.4f}",
                f"{row['average_cost_source']:,.4f}",
                f"{row['average_cost_home']:,.4f}",
                f"{row['total_cost_home']:,.2f}",
                f"{price:,.4f}" if price is not None else "N/A",
                f"{value:,.2f}" if value is not None else "N/A",
                _pnl_markup(pnl, pnl_text),
                style=row_style,
            )

        self.console.print(table)
        return None

    def create_ledger_table(self, ledger_id: str, currency: str, summary: LedgerSummary,
                            output_format: str = "display") -> Optional[str]:
        """Render a currency ledger's balance and average cost."""
        if output_format == "json":
            return json.dumps({
                "ledger_id": ledger_id,
                "currency": currency,
                "balance": summary.balance,
                "average_cost": summary.average_cost,
                "total_cost": summary.total_cost,
                "realized_pnl": summary.realized_pnl,
            }, indent=2, default=_json_default)

        table = Table(title=f"{_safe_emoji('💱')} Ledger {ledger_id} ({currency})", show_header=True,
                      header_style="bold blue")
        table.add_column("Item", style="cyan", no_wrap=True)
        table.add_column("Amount", justify="right", style="yellow")
        table.add_row("Balance", format_money_display(summary.balance, currency, places=4))
        table.add_row("Average Cost", f"{summary.average_cost:,.6f}", style="on grey11")
        table.add_row("Total Cost", format_money_display(summary.total_cost, self.home_currency))
        table.add_row(
            "Realized FX P&L",
            _pnl_markup(summary.realized_pnl, format_money_display(summary.realized_pnl, self.home_currency)),
            style="on grey11",
        )
        self.console.print(table)
        return None

    def create_pricing_table(self, rate: Decimal, source: str, breakdown: List[LayerConsumption],
                             output_format: str = "display") -> Optional[str]:
        """Render the layers a purchase consumed and the resulting rate."""
        if output_format == "json":
            return json.dumps({
                "rate": rate,
                "source": source,
                "breakdown": [
                    {"date": c.event_date, "units": c.units, "unit_cost": c.unit_cost}
                    for c in breakdown
                ],
            }, indent=2, default=_json_default)

        table = Table(title=f"Purchase priced at {rate} ({source})", show_header=True,
                      header_style="bold magenta")
        table.add_column("Layer Date", style="dim", no_wrap=True)
        table.add_column("Units", justify="right", style="bright_white")
        table.add_column("Unit Cost", justify="right", style="yellow")
        for row_index, consumption in enumerate(breakdown):
            row_style = "on grey11" if row_index % 2 == 1 else None
            table.add_row(
                consumption.event_date.isoformat() if consumption.event_date else "-",
                f"{consumption.units:,.4f}",
                "free" if consumption.is_free else f"{consumption.unit_cost:,.6f}",
                style=row_style,
            )
        self.console.print(table)
        return None

    def create_returns_table(self, results: Dict[str, ReturnResult], output_format: str = "display") -> Optional[str]:
        """Render return results keyed by method name."""
        if output_format == "json":
            return json.dumps({name: result.to_dict() for name, result in results.items()},
                              indent=2, default=_json_default)

        table = Table(title=f"{_safe_emoji('📈')} Returns", show_header=True, header_style="bold blue")
        table.add_column("Method", style="cyan", no_wrap=True)
        table.add_column("Return", justify="right")
        table.add_column("Note", style="dim")
        for name, result in results.items():
            table.add_row(
                name.replace('_', ' ').title(),
                _pnl_markup(result.rate, result.display()),
                result.message or "",
            )
        self.console.print(table)
        return None
