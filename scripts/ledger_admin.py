#!/usr/bin/env python3
"""
Administrative commands for a fuel-ledger store.

Usage:
  python3 scripts/ledger_admin.py [--config FILE] [--database-url URL] COMMAND

Commands:
  init-db              create the schema (and seed the master admin when the
                       configuration says so)
  seed                 create or repair the master administrator
  export FILE          write the full ledger state as JSON
  import FILE          replace the store contents with a JSON export
  audit                compare every station's counters with its transactions
  reconcile STATION_ID repair one station's counters and lift quarantine

Exit status is 0 on success, 1 on a ledger error or an inconsistent audit.
"""

import argparse
import json
import sys
from pathlib import Path

ROOT = Path(__file__).resolve().parent.parent
sys.path.insert(0, str(ROOT))

from fuel_config import get_active_config
from fuel_config.bridges import apply_logging, build_ledger, init_engine
from fuel_kernel.db.engine import create_tables
from fuel_kernel.exceptions import FuelLedgerError


def _parse_args(argv=None) -> argparse.Namespace:
    p = argparse.ArgumentParser(description="Fuel ledger administration")
    p.add_argument("--config", default=None, help="Configuration YAML (default: $FUEL_LEDGER_CONFIG or bundled default)")
    p.add_argument("--database-url", default=None, help="Override the configured database URL")

    sub = p.add_subparsers(dest="command", required=True)
    sub.add_parser("init-db", help="Create tables and seed the master admin")
    sub.add_parser("seed", help="Create or repair the master admin")
    export = sub.add_parser("export", help="Export the ledger state to FILE")
    export.add_argument("file", type=Path)
    imp = sub.add_parser("import", help="Replace the ledger state from FILE")
    imp.add_argument("file", type=Path)
    sub.add_parser("audit", help="Report counter discrepancies")
    reconcile = sub.add_parser("reconcile", help="Repair one station")
    reconcile.add_argument("station_id")
    return p.parse_args(argv)


def _print_report(report) -> None:
    state = "OK" if report.is_consistent else "DIVERGED"
    if report.quarantine_reason:
        state += " (quarantined)"
    stored = report.stored
    print(
        f"  {report.station_id}  {state}  "
        f"pending={stored.pending} invoiced={stored.invoiced} paid={stored.paid}"
    )
    for d in report.discrepancies:
        print(f"      {d.invariant}: {d.detail}")


def main(argv=None) -> int:
    args = _parse_args(argv)
    config = get_active_config(args.config)
    apply_logging(config)
    engine = init_engine(config, args.database_url)
    ledger = build_ledger(config)

    try:
        if args.command == "init-db":
            create_tables(engine)
            print(f"  Schema ready on {engine.url.render_as_string(hide_password=True)}")
            if config.bootstrap.seed_on_init:
                result = ledger.bootstrap()
                print(f"  Master admin {'created' if result.created else 'present'}")
        elif args.command == "seed":
            result = ledger.bootstrap()
            if result.created:
                print("  Master admin created")
            elif result.role_restored:
                print("  Master admin role restored")
            else:
                print("  Master admin already present")
        elif args.command == "export":
            document = ledger.export_state()
            args.file.write_text(json.dumps(document, indent=2) + "\n")
            print(f"  Wrote {args.file}")
        elif args.command == "import":
            document = json.loads(args.file.read_text())
            counts = ledger.import_state(document)
            for section, count in counts.items():
                print(f"  {section}: {count}")
        elif args.command == "audit":
            reports = ledger.audit()
            for report in reports:
                _print_report(report)
            if not all(r.is_consistent for r in reports):
                return 1
        elif args.command == "reconcile":
            before = ledger.reconcile_station(args.station_id)
            print("  Before repair:")
            _print_report(before)
            print("  Station repaired")
    except FuelLedgerError as exc:
        print(f"  ERROR [{exc.code}]: {exc}", file=sys.stderr)
        return 1
    return 0


if __name__ == "__main__":
    sys.exit(main())
