import os
from dotenv import load_dotenv

# Load .env file only in development environment
if os.getenv("ENVIRONMENT", "development") == "development":
    load_dotenv()  # Load environment variables from .env file

# Database Configuration
DB_HOST = os.getenv("DB_HOST")
DB_NAME = os.getenv("DB_NAME")
DB_USER = os.getenv("DB_USER")
DB_PASSWORD = os.getenv("DB_PASSWORD")
DB_PORT = os.getenv("DB_PORT")

# API Keys
MORALIS_API_KEY = os.getenv("MORALIS_API_KEY")
ALCHEMY_API_KEY = os.getenv("ALCHEMY_API_KEY")
ETHERSCAN_API_KEY = os.getenv("ETHERSCAN_API_KEY")

# Outbound HTTP
HTTP_TIMEOUT_SECONDS = float(os.getenv("HTTP_TIMEOUT_SECONDS", "30"))
USER_AGENT = os.getenv(
    "USER_AGENT",
    "Mozilla/5.0 (Windows NT 10.0; Win64; x64) AppleWebKit/537.36 (KHTML, like Gecko) Chrome/91.0.4472.124 Safari/537.36",
)

# Pool quality gates
MIN_TVL_USD = float(os.getenv("MIN_TVL_USD", "10000"))
MIN_APY = float(os.getenv("MIN_APY", "0.01"))
MAX_APY = float(os.getenv("MAX_APY", "1000"))

# Change detection thresholds
APY_EPSILON = float(os.getenv("APY_EPSILON", "0.001"))
TVL_EPSILON_USD = float(os.getenv("TVL_EPSILON_USD", "1000"))

# Morpho chains queried on every sync (chain id -> chain name)
MORPHO_CHAIN_IDS = {1: "ethereum", 8453: "base"}
MORPHO_VAULT_PAGE_SIZE = int(os.getenv("MORPHO_VAULT_PAGE_SIZE", "500"))

# Holders
MAX_HOLDERS_PER_POOL = int(os.getenv("MAX_HOLDERS_PER_POOL", "15"))
HOLDER_HISTORY_FRESHNESS_MINUTES = int(os.getenv("HOLDER_HISTORY_FRESHNESS_MINUTES", "60"))
SCRAPER_REQUEST_DELAY_SECONDS = float(os.getenv("SCRAPER_REQUEST_DELAY_SECONDS", "2"))
SCRAPER_BATCH_SIZE = int(os.getenv("SCRAPER_BATCH_SIZE", "5"))
SCRAPER_BATCH_DELAY_SECONDS = float(os.getenv("SCRAPER_BATCH_DELAY_SECONDS", "10"))

# Health monitor
HEALTH_CACHE_TTL_SECONDS = float(os.getenv("HEALTH_CACHE_TTL_SECONDS", "30"))
HEALTH_REFRESH_SECONDS = float(os.getenv("HEALTH_REFRESH_SECONDS", "120"))

# AI outlooks
OUTLOOK_EXPIRY_HOURS = int(os.getenv("OUTLOOK_EXPIRY_HOURS", "2"))
OUTLOOK_POOL_LIMIT = int(os.getenv("OUTLOOK_POOL_LIMIT", "50"))

SERVICE_CONFIG_FILE = os.getenv(
    "SERVICE_CONFIG_FILE",
    os.path.join(os.path.dirname(os.path.abspath(__file__)), "service_configs.yaml"),
)
