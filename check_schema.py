#!/usr/bin/env python3
"""Check that the dashboard tables, view, RPC and images bucket are reachable."""

from dotenv import load_dotenv
load_dotenv()

from queries import NIL_UUID
from supabase_client import IMAGES_BUCKET, get_supabase, get_table_client

db = get_table_client()

for table in ("sections", "folders", "cards", "card_folders"):
    try:
        result = db.table(table).select("*").limit(1).execute()
        print(f"{table} table exists: {len(result.data)} rows sampled")
    except Exception as e:
        print(f"{table} table ERROR: {e}")

# View of cards with no folder link
try:
    result = db.table("cards_without_folder").select("id").limit(1).execute()
    print(f"cards_without_folder view exists: {len(result.data)} rows sampled")
except Exception as e:
    print(f"cards_without_folder view ERROR: {e}")

# Recursive subtree function; an unknown root returns no rows
try:
    result = db.rpc("cards_in_tree", {"root": NIL_UUID}).execute()
    print(f"cards_in_tree function exists: {len(result.data or [])} rows")
except Exception as e:
    print(f"cards_in_tree function ERROR: {e}")

try:
    files = get_supabase().storage.from_(IMAGES_BUCKET).list()
    print(f"{IMAGES_BUCKET} bucket reachable: {len(files)} entries at root")
except Exception as e:
    print(f"{IMAGES_BUCKET} bucket ERROR: {e}")
