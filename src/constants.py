"""Project-wide constants shared by runtime code, migrations and tests."""

DB_SCHEMA = "salesdesk"

# Ledger keys, one persisted blob per key (day string -> value).
DISMISSED_MEETINGS_KEY = "dismissedMeetings"
DISMISSED_NOTES_KEY = "dismissedNotes"
DISMISSED_LOGOUT_KEY = "dismissedLogoutReminders"

LEDGER_KEYS = (DISMISSED_MEETINGS_KEY, DISMISSED_NOTES_KEY, DISMISSED_LOGOUT_KEY)
