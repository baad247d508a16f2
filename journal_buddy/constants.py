"""Project-wide constants."""

DB_SCHEMA = "journal_buddy"

# Single-user default until an auth layer provides real identities.
DEFAULT_USER_ID = "00000000-0000-0000-0000-000000000001"
