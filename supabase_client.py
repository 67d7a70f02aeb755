"""
Backend client construction.

Table access goes through the Supabase REST client by default. When
DATABASE_URL is set, tables and the cards_in_tree RPC are reached over
direct postgres instead (CompatClient), which also lets imports run in
a single transaction. Image storage always uses the Supabase client.
"""

import os
from dotenv import load_dotenv
from supabase import create_client, Client

from db import database_configured

load_dotenv()

IMAGES_BUCKET = os.getenv("IMAGES_BUCKET", "images")

_supabase = None


def get_supabase() -> Client:
    """Return the shared Supabase client, creating it on first use."""
    global _supabase
    if _supabase is None:
        url = os.getenv("SUPABASE_URL")
        key = os.getenv("SUPABASE_KEY")
        if not url or not key:
            raise RuntimeError("SUPABASE_URL and SUPABASE_KEY must be configured")
        _supabase = create_client(url, key)
    return _supabase


def get_table_client():
    """Client used for table CRUD and RPC calls."""
    if database_configured():
        from db_compat import CompatClient
        return CompatClient()
    return get_supabase()
