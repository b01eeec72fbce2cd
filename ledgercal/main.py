import argparse
import logging
import sys
from pathlib import Path

import requests

from ledgercal.database.db_manager import DatabaseManager
from ledgercal.services.csv_service import IMPORT_FAILED_MESSAGE, export_filename
from ledgercal.services.gateway import HttpGateway, SqliteGateway
from ledgercal.services.transaction_store import LedgerStore
from ledgercal.utils import app_config
from ledgercal.utils.constants import APP_NAME, DB_FILE, IMPORT_MODES
from ledgercal.utils.currency import format_currency, format_signed
from ledgercal.utils.date_helpers import current_month_str, friendly_month

logger = logging.getLogger("ledgercal")


def build_parser() -> argparse.ArgumentParser:
    parser = argparse.ArgumentParser(prog="ledgercal", description=APP_NAME)
    parser.add_argument("--db-folder", help="directory holding the ledger database")
    parser.add_argument("--remote", help="base URL of a running ledgercal server")
    parser.add_argument("--log-level", help="DEBUG, INFO, WARNING or ERROR")
    sub = parser.add_subparsers(dest="command", required=True)

    serve = sub.add_parser("serve", help="run the HTTP API")
    serve.add_argument("--host")
    serve.add_argument("--port", type=int)

    sub.add_parser("accounts", help="list accounts")

    imp = sub.add_parser("import-csv", help="import transactions from a CSV file")
    imp.add_argument("file")
    imp.add_argument("--account", help="account id (default: active account)")
    imp.add_argument("--mode", choices=IMPORT_MODES, default="merge")
    imp.add_argument("--dry-run", action="store_true", help="only report what would happen")

    exp = sub.add_parser("export-csv", help="export transactions to a CSV file")
    exp.add_argument("--account", help="account id (default: active account)")
    exp.add_argument("--from", dest="date_from")
    exp.add_argument("--to", dest="date_to")
    exp.add_argument("-o", "--output", help="output path (default: generated file name, '-' for stdout)")

    cfg = sub.add_parser("config", help="show or change settings in the config file")
    cfg.add_argument("key", nargs="?")
    cfg.add_argument("value", nargs="?")
    cfg.add_argument("--unset", action="store_true", help="remove the key from the config file")

    month = sub.add_parser("month", help="print a month's calendar balances")
    month.add_argument("month", nargs="?", help="YYYY-MM (default: current month)")
    month.add_argument("--account", help="account id (default: active account)")
    return parser


def _db_path(config: dict) -> str:
    folder = config.get("db_folder")
    return str(Path(folder) / DB_FILE) if folder else DB_FILE


def _open_store(args, config: dict) -> tuple[LedgerStore, DatabaseManager | None]:
    if args.remote:
        return LedgerStore(HttpGateway(args.remote)).load(), None
    db = DatabaseManager.open(db_folder=config.get("db_folder"))
    return LedgerStore(SqliteGateway(db), config["persist_delay_seconds"]).load(), db


def _serve(args, config: dict) -> int:
    import uvicorn
    from ledgercal.api.app import create_app

    app = create_app(
        db_path=_db_path(config),
        expansion_months=config["server_expansion_months"],
    )
    uvicorn.run(app, host=args.host or config["host"], port=args.port or config["port"])
    return 0


def _config(args, config: dict) -> int:
    if args.key and (args.value is not None or args.unset):
        config = app_config.update_config(args.key, None if args.unset else args.value)
    elif args.key:
        if args.key not in config:
            raise ValueError(f"Unknown setting '{args.key}'.")
        config = {args.key: config[args.key]}
    for key, value in config.items():
        print(f"{key} = {value}")
    return 0


def _print_month(store: LedgerStore, account_id: str | None, month: str):
    view = store.month_view(account_id, month)
    print(friendly_month(month))
    print(f"  Starting balance: {format_currency(view.starting_balance)}")
    print(f"  Month change:     {format_signed(view.month_change)}")
    print(f"  Ending balance:   {format_currency(view.ending_balance)}")
    print()
    print("  " + "".join(f"{d:>14}" for d in ("Sun", "Mon", "Tue", "Wed", "Thu", "Fri", "Sat")))
    for week in range(6):
        cells = view.cells[week * 7:(week + 1) * 7]
        line = ""
        for cell in cells:
            marker = " " if cell.in_month else "*"
            line += f"{cell.day:>3}{marker}{format_currency(cell.balance):>10}"
        print("  " + line)


def run(args, config: dict) -> int:
    if args.command == "serve":
        return _serve(args, config)
    if args.command == "config":
        return _config(args, config)

    store, db = _open_store(args, config)
    try:
        if args.command == "accounts":
            for account in store.accounts:
                marker = "*" if account.id == store.active_account_id else " "
                print(f"{marker} {account.id}  {account.name}  ({len(account.transactions)} transactions)")
        elif args.command == "import-csv":
            try:
                text = Path(args.file).read_text(encoding="utf-8-sig")
            except (OSError, UnicodeDecodeError):
                logger.exception("Reading %s failed", args.file)
                print(IMPORT_FAILED_MESSAGE, file=sys.stderr)
                return 1
            if args.dry_run:
                preview = store.preview_import(args.account, text, args.mode)
                for key, value in preview.to_dict().items():
                    print(f"{key}: {value}")
            else:
                _, message = store.import_csv(args.account, text, args.mode)
                print(message)
        elif args.command == "export-csv":
            text = store.export_csv(args.account, args.date_from, args.date_to)
            if args.output == "-":
                sys.stdout.write(text)
            else:
                path = Path(args.output or export_filename(args.date_from, args.date_to))
                path.write_text(text, encoding="utf-8")
                print(f"Exported to {path}")
        elif args.command == "month":
            _print_month(store, args.account, args.month or current_month_str())
        if not store.flush():
            print("Could not save changes; see log for details.", file=sys.stderr)
            return 1
    finally:
        if db is not None:
            db.close()
    return 0


def main(argv: list[str] | None = None) -> int:
    args = build_parser().parse_args(argv)

    # ── Bootstrap: config file, then command-line overrides ───────────────────
    config = app_config.effective_config()
    if args.db_folder:
        config["db_folder"] = args.db_folder
    level = (args.log_level or config.get("log_level") or "INFO").upper()
    logging.basicConfig(
        level=getattr(logging, level, logging.INFO),
        format="%(asctime)s %(levelname)s %(name)s: %(message)s",
    )

    try:
        return run(args, config)
    except (ValueError, LookupError) as exc:
        print(f"Error: {exc}", file=sys.stderr)
        return 1
    except requests.RequestException as exc:
        logger.error("Server request failed: %s", exc)
        return 1


if __name__ == "__main__":
    sys.exit(main())
