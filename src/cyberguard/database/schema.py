"""SQLite schema definitions for the CyberGuard durable store."""

SCHEMA_VERSION = 1

CREATE_TABLES = [
    # Key-value table - the browser localStorage equivalent.
    # Holds the serialized index document and the encryption key material.
    """
    CREATE TABLE IF NOT EXISTS kv (
        key TEXT PRIMARY KEY,
        value TEXT NOT NULL,
        updated_at TIMESTAMP DEFAULT CURRENT_TIMESTAMP
    )
    """,
    # Blob table - only written in fallback (local-only) mode, keyed by content id
    """
    CREATE TABLE IF NOT EXISTS blobs (
        content_id TEXT PRIMARY KEY,
        data BLOB NOT NULL,
        size INTEGER NOT NULL,
        created_at TIMESTAMP DEFAULT CURRENT_TIMESTAMP
    )
    """,
    """
    CREATE TABLE IF NOT EXISTS schema_version (
        version INTEGER PRIMARY KEY,
        applied_at TIMESTAMP DEFAULT CURRENT_TIMESTAMP
    )
    """,
]

CREATE_TRIGGERS = [
    """
    CREATE TRIGGER IF NOT EXISTS update_kv_timestamp
    AFTER UPDATE OF value ON kv
    FOR EACH ROW
    BEGIN
        UPDATE kv SET updated_at = CURRENT_TIMESTAMP
        WHERE key = NEW.key;
    END
    """,
]


def get_init_schema():
    """
    Get complete schema initialization SQL

    Returns:
        List of SQL statements to execute
    """
    statements = []
    statements.extend(CREATE_TABLES)
    statements.extend(CREATE_TRIGGERS)
    statements.append(
        f"INSERT OR IGNORE INTO schema_version (version) VALUES ({SCHEMA_VERSION})"
    )
    return statements
