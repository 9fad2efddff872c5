"""Command line entry point.

Examples:
    iris-revenue report --year 2025 --view revenue
    iris-revenue set-kpi --year 2025 --month 2025-03 --field targetRevenue 5000
    iris-revenue set-consumption --year 2025 --entity 42 --view hours 12.5
"""

import argparse
import asyncio
import sys

import structlog

from iris_revenue.aggregation import RevenueReport, format_diff, format_value
from iris_revenue.api import RevenueAPIClient
from iris_revenue.config import configure_logging, get_settings
from iris_revenue.errors import IrisRevenueError, MutationError, ValidationError
from iris_revenue.models import KpiField, ViewMode
from iris_revenue.session import ReportSession

logger = structlog.get_logger(__name__)


def render_report(report: RevenueReport, currency_symbol: str = "€") -> str:
    """Plain-text summary of a report."""
    mode = report.view_mode

    def fmt(value: float | None) -> str:
        return format_value(value, mode, currency_symbol=currency_symbol)

    lines = [f"Revenue report {report.year} ({mode.value})", "=" * 60]
    for row in report.rows:
        marker = " " if row.included else "x"
        name = row.entity.name[:36]
        lines.append(f"[{marker}] {name:<36} {fmt(row.total):>10} {fmt(row.remaining):>10}")
    lines.append("-" * 60)
    for month in report.months:
        lines.append(f"{month:<40} {fmt(report.monthly_totals[month]):>19}")
    lines.append("-" * 60)
    lines.append(f"{'Total':<40} {fmt(report.grand_total):>19}")
    if mode is ViewMode.REVENUE:
        lines.append(f"{'Prior-year consumption':<40} {fmt(report.prior_year_total):>19}")
    lines.append(f"{'Remaining':<40} {fmt(report.total_remaining):>19}")

    if report.kpi_totals is not None and mode is ViewMode.REVENUE:
        totals = report.kpi_totals
        lines.append("-" * 60)
        lines.append(f"{'Target':<40} {fmt(totals.target):>19}")
        lines.append(f"{'Final':<40} {fmt(totals.final):>19}")
        lines.append(
            f"{'Final vs target':<40} "
            f"{format_diff(totals.target_final_diff, mode, currency_symbol):>19}"
        )
        lines.append(
            f"{'Total vs target':<40} "
            f"{format_diff(totals.target_total_diff, mode, currency_symbol):>19}"
        )
    return "\n".join(lines)


def build_parser() -> argparse.ArgumentParser:
    settings = get_settings()
    parser = argparse.ArgumentParser(
        prog="iris-revenue",
        description="Revenue and hours report with manual KPI corrections",
    )
    parser.add_argument("--api-url", default=None, help="Revenue API base URL")
    sub = parser.add_subparsers(dest="command", required=True)

    report = sub.add_parser("report", help="Print the report for a year")
    report.add_argument("--year", type=int, default=settings.default_year)
    report.add_argument(
        "--view", choices=[m.value for m in ViewMode], default=settings.default_view_mode
    )
    report.add_argument("--refresh", action="store_true", help="Bypass the cache")

    kpi = sub.add_parser("set-kpi", help="Set a monthly target or final revenue")
    kpi.add_argument("--year", type=int, default=settings.default_year)
    kpi.add_argument("--month", required=True, help="Month key, YYYY-MM")
    kpi.add_argument("--field", choices=[f.value for f in KpiField], required=True)
    kpi.add_argument("value")

    consumption = sub.add_parser("set-consumption", help="Set prior-year consumption")
    consumption.add_argument("--year", type=int, default=settings.default_year)
    consumption.add_argument("--entity", type=int, required=True)
    consumption.add_argument(
        "--view", choices=[m.value for m in ViewMode], default=settings.default_view_mode
    )
    consumption.add_argument("value")
    return parser


async def run(args: argparse.Namespace) -> int:
    settings = get_settings()
    async with RevenueAPIClient(base_url=args.api_url) as api:
        view = getattr(args, "view", None)
        session = ReportSession.from_api(api, year=args.year, view_mode=view)
        await session.refresh(force_refresh=getattr(args, "refresh", False))
        if session.error:
            print(f"✗ {session.error}", file=sys.stderr)
            if not session.entities:
                return 1

        try:
            if args.command == "set-kpi":
                await session.edit_kpi(args.month, args.field, args.value)
                print(f"✓ {args.field} for {args.month} saved")
            elif args.command == "set-consumption":
                await session.edit_consumption(args.entity, args.value)
                print(f"✓ Prior-year consumption for {args.entity} saved")
        except (ValidationError, MutationError) as e:
            print(f"✗ {e.message}", file=sys.stderr)
            return 2

        print(render_report(session.report(), settings.currency_symbol))
        if session.error:
            print(f"✗ {session.error}", file=sys.stderr)
    return 0


def main(argv: list[str] | None = None) -> None:
    configure_logging()
    args = build_parser().parse_args(argv)

    try:
        code = asyncio.run(run(args))
    except KeyboardInterrupt:
        logger.info("interrupted")
        code = 130
    except IrisRevenueError as e:
        logger.error("command_failed", command=args.command, error=e.message)
        code = 1
    sys.exit(code)


if __name__ == "__main__":
    main()
