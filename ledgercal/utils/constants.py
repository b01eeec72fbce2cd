APP_NAME = "Ledger Calendar"
DB_FILE = "ledger.db"

DEFAULT_ACCOUNT_NAME = "Main Account"
ACTIVE_ACCOUNT_SETTING = "active_account_id"
DATE_FORMAT = "%Y-%m-%d"
MONTH_FORMAT = "%Y-%m"

ONE_TIME = "one-time"
RECURRENCES = ["one-time", "daily", "weekly", "bi-weekly", "monthly", "quarterly", "yearly"]
# Legacy spellings found in older saved data, all meaning "does not repeat"
ONE_TIME_ALIASES = ("", "none", "one-time", "once")

DAY_STRIDES = {
    "daily": 1,
    "weekly": 7,
    "bi-weekly": 14,
}
MONTH_STRIDES = {
    "monthly": 1,
    "quarterly": 3,
    "yearly": 12,
}

SERVER_EXPANSION_MONTHS = 12
MAX_GENERATED_PER_TEMPLATE = 1000
PERSIST_DELAY_SECONDS = 0.5
HISTORY_MAX_ITEMS = 100
SUGGESTION_LIMIT = 10

CALENDAR_GRID_CELLS = 42
DEFAULT_REPORT_DAYS = 30
UNCATEGORIZED = "Uncategorized"

IMPORT_MODES = ("merge", "replace")
CSV_HEADER = ["date", "payee", "description", "notes", "amount", "recurrence"]
EXPORT_FILE_PREFIX = "finance-transactions"

CLEAR_SCOPES = ("anchor", "occurrence")

CHART_COLORS = {
    "income": "#4CAF50",
    "expense": "#F44336",
    "balance": "#2196F3",
}

CATEGORY_PALETTE = [
    "#FF9800", "#F44336", "#9C27B0", "#2196F3", "#00BCD4",
    "#FF5722", "#009688", "#8BC34A", "#4CAF50", "#888888",
]

# Synthetic ids for generated occurrences
CLIENT_INSTANCE_ID = "{id}-recur-{date}"
SERVER_INSTANCE_ID = "{id}-{date}"
