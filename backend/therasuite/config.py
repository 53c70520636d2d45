# backend/therasuite/config.py
import os
from dotenv import load_dotenv

load_dotenv(dotenv_path=os.path.join(os.path.dirname(os.path.dirname(os.path.abspath(__file__))), ".env"))

ASYNC_DB_URL = os.getenv("ASYNC_DATABASE_URL", "sqlite+aiosqlite:///./therasuite.db")
AUTO_CREATE_TABLES = os.getenv("AUTO_CREATE_TABLES", "false").lower() == "true"

SECRET_KEY = os.getenv("SECRET_KEY") or "dev-insecure-secret-change-me"
ALGORITHM = os.getenv("ALGORITHM", "HS256")
ACCESS_TOKEN_EXPIRE_MINUTES = int(os.getenv("ACCESS_TOKEN_EXPIRE_MINUTES", "720"))
# "로그인 유지" 선택 시
REMEMBER_ME_EXPIRE_DAYS = int(os.getenv("REMEMBER_ME_EXPIRE_DAYS", "30"))

CORS_ORIGINS = [
    o.strip()
    for o in os.getenv("CORS_ORIGINS", "http://localhost:3000,http://127.0.0.1:3000").split(",")
    if o.strip()
]

KAFKA_ENABLED = os.getenv("KAFKA_ENABLED", "false").lower() == "true"
KAFKA_BOOTSTRAP = os.getenv("KAFKA_BOOTSTRAP", "redpanda:9092")
KAFKA_TOPIC_PREFIX = os.getenv("KAFKA_TOPIC_PREFIX", "therasuite")

LOG_LEVEL = os.getenv("LOG_LEVEL", "INFO").upper()

CURRENCY = os.getenv("CURRENCY", "INR")

# 대시보드 / 패키지 상태 계산에 쓰이는 기준값
ACTIVE_PATIENT_WINDOW_DAYS = 30
EXPIRING_SOON_DAYS = 7

DEFAULT_SESSION_START = "10:00"
DEFAULT_SESSION_MINUTES = 60
