# config.example.py

"""
Documentation-only module (safe to commit).

The real configuration is loaded from environment variables (optionally via a local .env file).
Do NOT commit real secrets. Use:
- .env (local, gitignored)
- <data_dir>/remote.json (written by /config; environment still wins)

Without a Supabase URL + anon key the app runs in local-only mode (SQLite under the data dir).
"""

ENV_VARS = {
    # App / logging
    "UNITRACK_APP_NAME": "App display name (default: unitrack).",
    "UNITRACK_LOG_LEVEL": "Console logging level (default: INFO).",
    # Remote store (aliases SUPABASE_URL / VITE_SUPABASE_URL are accepted)
    "UNITRACK_SUPABASE_URL": "Supabase project URL.",
    "UNITRACK_SUPABASE_ANON_KEY": "Supabase anon (public) key.",
    "UNITRACK_HTTP_TIMEOUT_SECONDS": "Read/write timeout for store requests (default: 10).",
    # Session
    "UNITRACK_ACCESS_TOKEN": "User access token issued by the identity provider (remote mode).",
    "UNITRACK_OWNER_ID": "Owner id the data is scoped to (default: local-user).",
    # Sync strategy
    "UNITRACK_SYNC_DISCIPLINE": "optimistic (apply first, roll back) or persist_first.",
    "UNITRACK_VERIFY_WRITES": "Read written rows back and treat zero rows as failure (default: true).",
    "UNITRACK_ROLLBACK": "Revert optimistic changes on failure (default: true).",
    # Paths (gitignored)
    "UNITRACK_DATA_DIR": "Local data directory (default: .local/unitrack).",
    "UNITRACK_LOCAL_DB_PATH": "Local-only store path (default: <data_dir>/local.sqlite3).",
    "UNITRACK_REMOTE_CONFIG_PATH": "Persisted remote config record (default: <data_dir>/remote.json).",
}
