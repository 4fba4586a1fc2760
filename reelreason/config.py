# -------------------------------------------------------
# config.py - 환경변수 기반 설정값 모음
# -------------------------------------------------------

import os
from dotenv import load_dotenv

# .env 파일의 환경변수를 현재 프로세스 환경에 주입
load_dotenv()

# -----------------------------
# 데이터베이스
# -----------------------------
DB_USER = os.getenv("DB_USER", "reelreason")
DB_PASSWORD = os.getenv("DB_PASSWORD", "reelreason")
DB_HOST = os.getenv("DB_HOST", "")
DB_PORT = os.getenv("DB_PORT", "3306")
DB_NAME = os.getenv("DB_NAME", "reelreason")

# DB_HOST가 있으면 MySQL(PyMySQL 드라이버), 없으면 로컬 SQLite 파일
if DB_HOST:
    _default_url = f"mysql+pymysql://{DB_USER}:{DB_PASSWORD}@{DB_HOST}:{DB_PORT}/{DB_NAME}?charset=utf8mb4"
else:
    _default_url = "sqlite:///./reelreason.db"
DATABASE_URL = os.getenv("DATABASE_URL", _default_url)

# -----------------------------
# 서버 측 정책
# -----------------------------
ACTIVITY_FEED_CAP = int(os.getenv("ACTIVITY_FEED_CAP", "100"))   # 활동 피드 최대 보관 건수
OTP_TTL_SECONDS = int(os.getenv("OTP_TTL_SECONDS", "600"))       # 인증 코드 유효시간(10분)

# -----------------------------
# 클라이언트(동기화) 측 설정
# -----------------------------
API_BASE_URL = os.getenv("API_BASE_URL", "http://127.0.0.1:8000/api")
POLL_INTERVAL_SECONDS = float(os.getenv("POLL_INTERVAL_SECONDS", "3"))
REQUEST_TIMEOUT_SECONDS = float(os.getenv("REQUEST_TIMEOUT_SECONDS", "10"))
RECOMMENDATION_LIMIT = int(os.getenv("RECOMMENDATION_LIMIT", "15"))

# 퀴즈(GUESS_THE_MOVIE) 기본 제한시간(분)
DEFAULT_TIME_LIMIT_MINS = int(os.getenv("DEFAULT_TIME_LIMIT_MINS", "5"))

# -----------------------------
# 외부 메타데이터 제공자(TMDB)
# -----------------------------
TMDB_API_KEY = os.getenv("TMDB_API_KEY", "")
TMDB_BASE_URL = os.getenv("TMDB_BASE_URL", "https://api.themoviedb.org/3")
TMDB_IMAGE_BASE_URL = os.getenv("TMDB_IMAGE_BASE_URL", "https://image.tmdb.org/t/p/w500")

LOG_LEVEL = os.getenv("LOG_LEVEL", "INFO")
