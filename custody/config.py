import os
from dotenv import load_dotenv

load_dotenv()

class Config:
    SQLALCHEMY_TRACK_MODIFICATIONS = False
    SQLALCHEMY_DATABASE_URI = os.getenv("DATABASE_URL", "sqlite:///custody.db")

    CORS_ORIGINS = os.getenv("CORS_ORIGINS", "http://localhost:5173")
    LOG_LEVEL = os.getenv("LOG_LEVEL", "INFO")
    AUTO_CREATE_TABLES = os.getenv("AUTO_CREATE_TABLES", "true").lower() == "true"

    # Credential vault
    ENCRYPTION_KEY = os.getenv("ENCRYPTION_KEY")
    BCRYPT_LOG_ROUNDS = int(os.getenv("BCRYPT_LOG_ROUNDS", 12))
    BCRYPT_HANDLE_LONG_PASSWORDS = True

    # Ledger gateway
    TRON_API_URL = os.getenv("TRON_API_URL", "https://api.trongrid.io")
    TRON_API_KEY = os.getenv("TRON_API_KEY")
    USDT_CONTRACT_ADDRESS = os.getenv("USDT_CONTRACT_ADDRESS", "TR7NHqjeKQxGTCi8q8ZY4pL8otSzgjLj6t")
    LEDGER_TIMEOUT = float(os.getenv("LEDGER_TIMEOUT", 15))
    TRX_FEE_ESTIMATE = os.getenv("TRX_FEE_ESTIMATE", "1.1")
    USDT_FEE_ESTIMATE = os.getenv("USDT_FEE_ESTIMATE", "13.8~30")
    # which end of a fee range must be covered before sending: upper or lower
    FEE_SOLVENCY_BOUND = os.getenv("FEE_SOLVENCY_BOUND", "upper").lower()
    TRC20_FEE_LIMIT_SUN = int(os.getenv("TRC20_FEE_LIMIT_SUN", 100_000_000))
    TRANSFER_SCAN_LIMIT = int(os.getenv("TRANSFER_SCAN_LIMIT", 100))

    # Reconciliation
    CONFIRMATION_THRESHOLD = int(os.getenv("CONFIRMATION_THRESHOLD", 19))

    # Notification channel
    EVENT_QUEUE_SIZE = int(os.getenv("EVENT_QUEUE_SIZE", 32))
    EVENT_KEEPALIVE_SECONDS = float(os.getenv("EVENT_KEEPALIVE_SECONDS", 25))

class DevelopmentConfig(Config):
    DEBUG = True
    ENCRYPTION_KEY = Config.ENCRYPTION_KEY or "default-key-change-in-production-32b"

class ProductionConfig(Config):
    DEBUG = False

class TestingConfig(Config):
    TESTING = True
    SQLALCHEMY_DATABASE_URI = "sqlite://"
    ENCRYPTION_KEY = "test-encryption-key"
    BCRYPT_LOG_ROUNDS = 4
    TRON_API_URL = "https://tron.invalid"
    TRON_API_KEY = None
    LEDGER_TIMEOUT = 1.0
    EVENT_KEEPALIVE_SECONDS = 0.05

CONFIGS = {
    "development": DevelopmentConfig,
    "production": ProductionConfig,
    "testing": TestingConfig,
}
