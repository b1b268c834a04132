"""System constants and default values."""

from decimal import Decimal

# Currency configuration
DEFAULT_HOME_CURRENCY = "TWD"
HOME_CURRENCY_RATE = Decimal("1.0")

# Precision (fractional digits)
MONEY_PLACES = 2
RATE_PLACES = 6
SHARE_PLACES = 4
FOREIGN_AMOUNT_PLACES = 4
PERCENT_PLACES = 4

# Return calculation configuration
DAYS_PER_YEAR = 365
XIRR_INITIAL_GUESS = Decimal("0.1")
XIRR_MAX_ITERATIONS = 100
XIRR_TOLERANCE = Decimal("1e-7")
XIRR_LOWER_BOUND = Decimal("-0.999")
XIRR_UPPER_BOUND = Decimal("10")
XIRR_MAX_UPPER_BOUND = Decimal("1000000")

# Ledger behaviour
DEFAULT_BALANCE_ACTION = "reject"
DEFAULT_TOP_UP_CATEGORY = "exchange_buy"
TOP_UP_NOTE_PREFIX = "Top-up for stock purchase"

# Validation
MAX_NOTES_LENGTH = 500
MAX_TICKER_LENGTH = 20
FUTURE_DATE_TOLERANCE_DAYS = 1

# Market data configuration
DEFAULT_MARKET_DATA_SOURCE = "yahoo"
DEFAULT_RATE_CACHE_TTL_MINUTES = 60
DEFAULT_RATE_CACHE_SIZE = 1000
RATE_LOOKBACK_DAYS = 7

# Timezone
DEFAULT_HOME_TIMEZONE = "Asia/Taipei"

# Logging configuration
LOG_FILE = "ledger_engine.log"
DEFAULT_LOG_LEVEL = "INFO"
DEFAULT_LOG_FORMAT = "%(asctime)s - %(name)s - %(levelname)s - %(message)s"

# Version information
VERSION = "1.0.0"
