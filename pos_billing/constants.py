APP_NAME = "POS Billing"

DATA_DIR = "data"
DB_FILE_NAME = "pos_billing.db"
LOG_DIR = "logs"
AUDIT_LOG_FILE_NAME = "billing.log"

TABLE_SCHEMA_VERSION = "schema_version"
SCHEMA_VERSION = "1.1.0"

# ---- bill numbers ----
DEFAULT_BILL_PREFIX = "INV"
BILL_SEQUENCE_WIDTH = 4
MAX_BILL_NUMBER_ATTEMPTS = 3

# ---- roles ----
ROLE_OWNER = "owner"
ROLE_ADMIN = "admin"
ROLE_MANAGER = "manager"
ROLE_CASHIER = "cashier"
ROLE_SALESMAN = "salesman"

ROLES = (ROLE_OWNER, ROLE_ADMIN, ROLE_MANAGER, ROLE_CASHIER, ROLE_SALESMAN)
ELEVATED_ROLES = frozenset({ROLE_OWNER, ROLE_ADMIN, ROLE_MANAGER})

# ---- bill lifecycle ----
STATUS_DRAFT = "draft"
STATUS_COMPLETED = "completed"
STATUS_CANCELLED = "cancelled"

PAYMENT_CASH = "cash"
PAYMENT_DUE = "due"
PAYMENT_TYPES = (PAYMENT_CASH, PAYMENT_DUE)
