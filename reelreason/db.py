# -------------------------------------------------------
# db.py - SQLAlchemy 세션/엔진 및 FastAPI 의존성 정의
# -------------------------------------------------------

from sqlalchemy import create_engine
from sqlalchemy.orm import sessionmaker, declarative_base

from .config import DATABASE_URL


def make_engine(url: str = DATABASE_URL):
    """
    URL 스킴에 맞춰 엔진을 생성합니다.

    - SQLite: FastAPI 동기 핸들러는 스레드풀에서 실행되므로
      check_same_thread=False 가 필요합니다.
    - 그 외(MySQL 등): pool_pre_ping/pool_recycle 로 끊긴 커넥션을 재연결합니다.
    """
    if url.startswith("sqlite"):
        return create_engine(url, connect_args={"check_same_thread": False})
    return create_engine(url, pool_pre_ping=True, pool_recycle=3600)


engine = make_engine()

# 명시적 commit() 전까지는 반영되지 않는 세션 팩토리
SessionLocal = sessionmaker(autocommit=False, autoflush=False, bind=engine)

# 모든 ORM 모델이 상속받는 베이스 클래스
Base = declarative_base()


def get_db():
    """
    FastAPI 의존성 주입용 DB 세션 제공자(Generator)

    1) 요청이 들어오면 SessionLocal()로 세션 생성
    2) 핸들러에 주입(yield)
    3) 응답 후 finally 블록에서 세션 종료(close)
    """
    db = SessionLocal()
    try:
        yield db
    finally:
        db.close()
