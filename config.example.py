# config.example.py

"""
Documentation-only module (safe to commit).

The real configuration is loaded from environment variables (optionally via a
local .env file, which stays gitignored).

This file exists to make the repo self-documenting even without opening .env.
"""

ENV_VARS = {
    # App / logging
    "DONELIST_APP_NAME": "App display name (default: donelist).",
    "DONELIST_LOG_LEVEL": "Console logging level (default: INFO).",
    # Connectors
    "DONELIST_CONSOLE_ENABLED": "Run the console REPL; false runs the archival scheduler only.",
    # Signed-in user
    "DONELIST_OWNER_ID": "Owner id every task is scoped to (default: local).",
    "DONELIST_OWNER_EMAIL": "Shown by /status (optional).",
    # Paths (gitignored)
    "DONELIST_DATA_DIR": "Local data directory for logs and the DB (default: .local/donelist).",
    "DONELIST_TASKS_DB_PATH": "Task store SQLite path (default: <data_dir>/tasks.sqlite3).",
    # Tuning
    "DONELIST_ARCHIVAL_DELAY_SECONDS": "Completed tasks are archived after this long (default: 86400).",
    "DONELIST_SWEEP_INTERVAL_SECONDS": "Polling sweep period, min 0.5 (default: 60).",
    "DONELIST_MAX_ATTACHMENT_BYTES": "Attachment size limit (default: 5242880, i.e. 5 MiB).",
}
