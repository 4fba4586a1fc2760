# ------------------------------------------------------------
# main.py - FastAPI 앱/미들웨어/라우터 등록 진입점 (Request Router)
# ------------------------------------------------------------

import logging

from fastapi import FastAPI, Request
from fastapi.middleware.cors import CORSMiddleware
from fastapi.responses import JSONResponse
from .config import LOG_LEVEL
from .routers import auth, users, entries, social, activity, challenges   # 도메인별 라우터
from .db import Base, engine                                              # 테이블 생성에 사용
from .errors import ReelReasonError

logging.basicConfig(level=LOG_LEVEL, format="%(asctime)s %(levelname)s %(name)s: %(message)s")

# 앱 시작 시점에 ORM 메타데이터 기준으로 테이블을 생성 ("존재하지 않는 테이블만" 생성)
Base.metadata.create_all(bind=engine)

app = FastAPI(title="ReelReason Sync API")

# -------------------------------
# CORS 설정 (개발 단계: 전체 허용)
# -------------------------------
app.add_middleware(
    CORSMiddleware,
    allow_origins=["*"],
    allow_credentials=True,
    allow_methods=["*"],
    allow_headers=["*"],
)


# -------------------------------
# 도메인 오류 -> JSON 응답
# -------------------------------
# - 라우터 아래 계층에서 올라온 ReelReasonError 를 status_code 그대로 돌려줌
@app.exception_handler(ReelReasonError)
async def handle_domain_error(request: Request, exc: ReelReasonError):
    return JSONResponse(status_code=exc.status_code, content={"detail": exc.detail})


# -------------------------------
# 라우터 등록
# -------------------------------
# - auth:       /api/auth
# - users:      /api/users
# - entries:    /api/entries
# - social:     /api/social
# - activity:   /api/activity
# - challenges: /api/challenges
app.include_router(auth.router)
app.include_router(users.router)
app.include_router(entries.router)
app.include_router(social.router)
app.include_router(activity.router)
app.include_router(challenges.router)


# -------------------------------
# 상태 확인(헬스체크)용 루트 엔드포인트
# -------------------------------
@app.get("/")
def root():
    return {"ok": True, "service": "reelreason-sync"}
