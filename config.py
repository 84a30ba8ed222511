import os

# ---------- AUTH ----------
SECRET_KEY = os.environ.get("SECRET_KEY", "dev_secret_change_me_please")
ALGORITHM = "HS256"
ACCESS_TOKEN_EXPIRE_MINUTES = int(os.environ.get("ACCESS_TOKEN_EXPIRE_MINUTES", 60 * 24 * 7))
BCRYPT_ROUNDS = int(os.environ.get("BCRYPT_ROUNDS", 12))

# ---------- DATABASE ----------
DATABASE_URL = os.environ.get("DATABASE_URL", "sqlite:///./money_manager.db")

# ---------- HTTP ----------
CORS_ORIGINS = [
    o.strip()
    for o in os.environ.get("CORS_ORIGINS", "http://localhost:3000,http://127.0.0.1:3000").split(",")
    if o.strip()
]

LOG_LEVEL = os.environ.get("LOG_LEVEL", "INFO").upper()

# ---------- EXPENSES / SETTINGS ----------
DEFAULT_EXPENSE_LIMIT = 50
# largest value a SQL BIGINT column accepts
MAX_ID = 2 ** 63 - 1

# seeded for every new user
DEFAULT_SETTINGS = {
    "monthly_budget": "1000",
    "currency": "USD",
    "default_category": "Others",
}
