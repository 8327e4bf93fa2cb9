import os
from dotenv import load_dotenv

# Load .env from the backend directory
load_dotenv(os.path.join(os.path.dirname(__file__), "..", "..", ".env"))

SECRET_KEY: str = os.getenv("SECRET_KEY", "equation-anagram-dev-secret-change-in-prod")
ALGORITHM: str = "HS256"
ACCESS_TOKEN_EXPIRE_MINUTES: int = int(os.getenv("ACCESS_TOKEN_EXPIRE_MINUTES", "480"))

LOG_LEVEL: str = os.getenv("LOG_LEVEL", "INFO")

# Database — stored in backend/data/
BASE_DIR = os.path.dirname(os.path.abspath(__file__))
BACKEND_DIR = os.path.abspath(os.path.join(BASE_DIR, "..", ".."))

DATABASE_PATH: str = os.getenv(
    "DATABASE_PATH",
    os.path.join(BACKEND_DIR, "data", "anagram.db"),
)

# Puzzle engine
EVALUATION_ORDER: str = os.getenv("EVALUATION_ORDER", "precedence")  # precedence | left_to_right
GENERATION_MAX_ATTEMPTS: int = int(os.getenv("GENERATION_MAX_ATTEMPTS", "200"))
LOCK_MAX_RETRIES: int = int(os.getenv("LOCK_MAX_RETRIES", "20"))
SOLVER_DEFAULT_LIMIT: int = int(os.getenv("SOLVER_DEFAULT_LIMIT", "10"))
SOLVER_MAX_NODES: int = int(os.getenv("SOLVER_MAX_NODES", "250000"))  # tile placements tried per search

# Persistence retries
PERSIST_RETRY_ATTEMPTS: int = int(os.getenv("PERSIST_RETRY_ATTEMPTS", "3"))
PERSIST_RETRY_BACKOFF: float = float(os.getenv("PERSIST_RETRY_BACKOFF", "0.05"))  # seconds, doubled per retry
SUBMIT_CONFLICT_RETRIES: int = int(os.getenv("SUBMIT_CONFLICT_RETRIES", "3"))
