#!/usr/bin/env python3
"""Export or import dashboard data as JSON.

Usage:
    python backup.py export [FILE]      # default: linkboard-export-YYYY-MM-DD.json
    python backup.py import FILE --yes  # replaces ALL existing data
"""
import sys
import json
from dotenv import load_dotenv
load_dotenv()

import queries
from supabase_client import get_table_client
from utils import export_filename


def do_export(path=None):
    sb = get_table_client()
    data = queries.export_data(sb)
    path = path or export_filename()
    with open(path, "w", encoding="utf-8") as f:
        json.dump(data, f, indent=2, default=str)
    counts = ", ".join(f"{len(data[t])} {t}" for t in queries.EXPORT_TABLES)
    print(f"Exported {counts} to {path}")


def do_import(path, confirmed=False):
    with open(path, encoding="utf-8") as f:
        data = json.load(f)
    payload = queries.validate_import(data)
    counts = ", ".join(f"{len(payload[t])} {t}" for t in queries.EXPORT_TABLES)
    if not confirmed:
        print(f"{path} holds {counts}.")
        print("Importing deletes ALL existing data. Re-run with --yes to continue.")
        return 1
    queries.import_data(get_table_client(), data)
    print(f"Imported {counts} from {path}")
    return 0


if __name__ == "__main__":
    args = [a for a in sys.argv[1:] if not a.startswith("--")]
    if not args or args[0] not in ("export", "import"):
        print(__doc__)
        sys.exit(2)
    if args[0] == "export":
        do_export(args[1] if len(args) > 1 else None)
    else:
        if len(args) < 2:
            print("import needs a FILE")
            sys.exit(2)
        sys.exit(do_import(args[1], confirmed="--yes" in sys.argv))
