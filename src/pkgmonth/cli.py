"""CLI argument parsing and command implementations."""

import argparse
import json
import sys
import threading

from tabulate import tabulate

from .api import get_source
from .collector import DEFAULT_MAX_CONCURRENCY
from .config import (
    DEFAULT_PACKAGES_FILE,
    SOURCES,
    import_packages_from_file,
    load_config,
    parse_start_year,
    resolve_start_year,
    save_settings,
)
from .db import (
    DEFAULT_DB_FILE,
    add_package,
    by_month,
    get_all_monthly,
    get_db,
    get_watchlist_details,
    mark_stale,
    remove_package,
)
from .errors import ConfigInvalid, StoreUnavailable
from .export import export_csv, export_json, export_markdown
from .logging import setup_logging
from .reconcile import Reconciler, get_status, run_periodically
from .utils import make_sparkline, utc_today, validate_package_name

NO_PACKAGES_HINT = (
    "Add packages with 'pkgmonth add <name>' or import them with 'pkgmonth import'."
)


def cmd_add(args: argparse.Namespace) -> None:
    """Add command: add a package to the watchlist."""
    with get_db(args.database) as conn:
        source = load_config(conn).source
        is_valid, error = validate_package_name(args.name, source)
        if not is_valid:
            print(f"Invalid package name '{args.name}': {error}")
            return
        if add_package(conn, args.name):
            print(f"Added '{args.name}' to the watchlist.")
        else:
            print(f"Package '{args.name}' is already on the watchlist.")


def cmd_remove(args: argparse.Namespace) -> None:
    """Remove command: remove a package from the watchlist."""
    with get_db(args.database) as conn:
        if remove_package(conn, args.name):
            print(f"Removed '{args.name}' from the watchlist.")
        else:
            print(f"Package '{args.name}' was not on the watchlist.")


def cmd_list(args: argparse.Namespace) -> None:
    """List command: show the watchlist."""
    with get_db(args.database) as conn:
        packages = get_watchlist_details(conn)

        if not packages:
            print("No packages are being tracked.")
            print(NO_PACKAGES_HINT)
            return

        print(f"Tracking {len(packages)} packages:\n")
        rows = [[p["package_name"], p["added_date"]] for p in packages]
        print(tabulate(rows, headers=["Package", "Added"], tablefmt="simple"))


def cmd_import(args: argparse.Namespace) -> None:
    """Import command: import packages from file (YAML, JSON, or text)."""
    with get_db(args.database) as conn:
        try:
            added, skipped = import_packages_from_file(conn, args.file)
            print(f"Imported {added} packages ({skipped} already tracked).")
        except FileNotFoundError:
            print(f"File not found: {args.file}")


def cmd_config(args: argparse.Namespace) -> None:
    """Config command: show or change the start year and statistics source."""
    with get_db(args.database) as conn:
        try:
            if args.start_year is not None:
                parse_start_year(args.start_year)
            save_settings(conn, start_year=args.start_year, source=args.source)
        except ConfigInvalid as e:
            print(f"Invalid configuration: {e}")
            return

        config = load_config(conn)
        rows = [
            ["source", config.source],
            ["start_year", resolve_start_year(config.start_year)],
            ["packages", len(config.packages)],
        ]
        print(tabulate(rows, tablefmt="plain"))


def cmd_sync(args: argparse.Namespace) -> None:
    """Sync command: run one reconciliation pass."""
    try:
        with get_db(args.database) as conn:
            config = load_config(conn)
            reconciler = Reconciler(conn, get_source(config.source), args.concurrency)
            result = reconciler.run_pass(config)
    except StoreUnavailable as e:
        print(f"Index build error: {e}")
        sys.exit(1)

    if result is None:
        return
    print(
        f"{result.missing_cells} missing or stale months, "
        f"{result.written} records written, {len(result.failures)} months failed."
    )


def cmd_serve(args: argparse.Namespace) -> None:
    """Serve command: reconcile now and then on a fixed schedule."""
    with get_db(args.database) as conn:
        config = load_config(conn)
        reconciler = Reconciler(conn, get_source(config.source), args.concurrency)
        stop_event = threading.Event()
        try:
            run_periodically(reconciler, args.interval_hours * 3600, stop_event)
        except KeyboardInterrupt:
            stop_event.set()
            print("Stopped.")


def cmd_status(args: argparse.Namespace) -> None:
    """Status command: print service information as JSON."""
    with get_db(args.database) as conn:
        print(json.dumps(get_status(conn), indent=2))


def cmd_show(args: argparse.Namespace) -> None:
    """Show command: summary of stored monthly statistics."""
    with get_db(args.database) as conn:
        series = get_all_monthly(conn)

    if not series:
        print("No data in database. Run 'sync' first.")
        return

    # Trends cover completed months only
    current = f"{utc_today():%Y-%m}"
    summary = []
    for package, points in series.items():
        complete = [p for p in points if p["month"] < current]
        summary.append((package, sum(p["total"] for p in points), complete))
    summary.sort(key=lambda s: s[1], reverse=True)

    rows = []
    for i, (package, total, complete) in enumerate(summary, 1):
        last = complete[-1] if complete else None
        rows.append(
            [
                i,
                package,
                f"{total:,}",
                last["month"] if last else "",
                f"{last['total']:,}" if last else "",
                make_sparkline([p["total"] for p in complete]),
            ]
        )

    headers = ["#", "Package", "Total", "Last month", "Downloads", "Trend"]
    print(tabulate(rows, headers=headers, tablefmt="simple"))


def cmd_history(args: argparse.Namespace) -> None:
    """History command: show monthly totals for a package."""
    with get_db(args.database) as conn:
        series = by_month(conn, args.package)

    if not series:
        print(f"No data found for package '{args.package}'.")
        return

    print(f"Monthly downloads for {args.package}\n")
    rows = [[p["month"], f"{p['total']:,}"] for p in series[-args.limit :]]
    print(tabulate(rows, headers=["Month", "Downloads"], tablefmt="simple"))


def cmd_export(args: argparse.Namespace) -> None:
    """Export command: export a package's monthly series."""
    with get_db(args.database) as conn:
        series = by_month(conn, args.package)

    if not series:
        print(f"No data found for package '{args.package}'.")
        return

    if args.format == "csv":
        output = export_csv(args.package, series)
    elif args.format == "json":
        output = export_json(args.package, series)
    else:
        output = export_markdown(args.package, series)

    if args.output:
        with open(args.output, "w") as f:
            f.write(output)
        print(f"Exported to {args.output}")
    else:
        print(output)


def cmd_invalidate(args: argparse.Namespace) -> None:
    """Invalidate command: mark a stored month stale so it is refetched."""
    with get_db(args.database) as conn:
        if mark_stale(conn, args.package, args.month):
            print(f"Marked {args.package} {args.month} for refresh.")
        else:
            print(f"No data found for package '{args.package}' in {args.month}.")


def create_parser() -> argparse.ArgumentParser:
    """Create and configure the argument parser."""
    parser = argparse.ArgumentParser(
        description="Keep monthly package download statistics complete and fresh.",
        formatter_class=argparse.RawDescriptionHelpFormatter,
    )
    parser.add_argument(
        "-d",
        "--database",
        default=DEFAULT_DB_FILE,
        help=f"SQLite database file (default: {DEFAULT_DB_FILE})",
    )
    parser.add_argument(
        "-v",
        "--verbose",
        action="store_true",
        help="Show debug output",
    )
    parser.add_argument(
        "-q",
        "--quiet",
        action="store_true",
        help="Only show warnings and errors",
    )

    subparsers = parser.add_subparsers(dest="command", help="Available commands")

    # add command
    add_parser = subparsers.add_parser("add", help="Add a package to the watchlist")
    add_parser.add_argument("name", help="Package name to add")
    add_parser.set_defaults(func=cmd_add)

    # remove command
    remove_parser = subparsers.add_parser(
        "remove", help="Remove a package from the watchlist"
    )
    remove_parser.add_argument("name", help="Package name to remove")
    remove_parser.set_defaults(func=cmd_remove)

    # list command
    list_parser = subparsers.add_parser("list", help="List watch-listed packages")
    list_parser.set_defaults(func=cmd_list)

    # import command
    import_parser = subparsers.add_parser(
        "import",
        help="Import packages from file (YAML, JSON, or text)",
    )
    import_parser.add_argument(
        "file",
        nargs="?",
        default=DEFAULT_PACKAGES_FILE,
        help=f"File to import from - supports .yml, .json, or plain text (default: {DEFAULT_PACKAGES_FILE})",
    )
    import_parser.set_defaults(func=cmd_import)

    # config command
    config_parser = subparsers.add_parser(
        "config", help="Show or change the start year and statistics source"
    )
    config_parser.add_argument(
        "--start-year",
        help="First year to collect statistics for",
    )
    config_parser.add_argument(
        "--source",
        choices=SOURCES,
        help="Registry to collect statistics from",
    )
    config_parser.set_defaults(func=cmd_config)

    # sync and serve commands
    for name, help_text, func in (
        ("sync", "Collect missing and stale monthly statistics once", cmd_sync),
        ("serve", "Collect statistics now and then periodically", cmd_serve),
    ):
        sub = subparsers.add_parser(name, help=help_text)
        sub.add_argument(
            "-c",
            "--concurrency",
            type=int,
            default=DEFAULT_MAX_CONCURRENCY,
            help=f"Months fetched in parallel (default: {DEFAULT_MAX_CONCURRENCY})",
        )
        sub.set_defaults(func=func)
        if name == "serve":
            sub.add_argument(
                "--interval-hours",
                type=float,
                default=24 * 7,
                help="Hours between passes (default: 168)",
            )

    # status command
    status_parser = subparsers.add_parser(
        "status", help="Show last scan and collection times as JSON"
    )
    status_parser.set_defaults(func=cmd_status)

    # show command
    show_parser = subparsers.add_parser(
        "show", help="Display stored monthly statistics in terminal"
    )
    show_parser.set_defaults(func=cmd_show)

    # history command
    history_parser = subparsers.add_parser(
        "history", help="Show monthly totals for a package"
    )
    history_parser.add_argument("package", help="Package name to show history for")
    history_parser.add_argument(
        "-n",
        "--limit",
        type=int,
        default=24,
        help="Number of months to show (default: 24)",
    )
    history_parser.set_defaults(func=cmd_history)

    # export command
    export_parser = subparsers.add_parser(
        "export",
        help="Export a package's monthly totals (csv, json, markdown)",
    )
    export_parser.add_argument("package", help="Package name to export")
    export_parser.add_argument(
        "-f",
        "--format",
        choices=["csv", "json", "markdown", "md"],
        default="csv",
        help="Export format (default: csv)",
    )
    export_parser.add_argument(
        "-o",
        "--output",
        help="Output file (default: stdout)",
    )
    export_parser.set_defaults(func=cmd_export)

    # invalidate command
    invalidate_parser = subparsers.add_parser(
        "invalidate", help="Mark a stored month as outdated"
    )
    invalidate_parser.add_argument("package", help="Package name")
    invalidate_parser.add_argument("month", help="Month as YYYY-MM")
    invalidate_parser.set_defaults(func=cmd_invalidate)

    return parser


def main() -> None:
    """Main entry point for the CLI."""
    parser = create_parser()
    args = parser.parse_args()

    if args.command is None:
        parser.print_help()
        return

    setup_logging(verbose=args.verbose, quiet=args.quiet)
    args.func(args)
