import os
import tempfile
import unittest

# 앱 모듈이 import 될 때 만드는 기본 엔진이 작업 디렉터리에 파일을 남기지 않도록
_SCRATCH = tempfile.mkdtemp(prefix="reelreason-test-")
os.environ.setdefault("DATABASE_URL", f"sqlite:///{os.path.join(_SCRATCH, 'default.db')}")

import httpx
from fastapi.testclient import TestClient
from sqlalchemy.orm import sessionmaker

from reelreason.client import CloudClient
from reelreason.db import Base, get_db, make_engine
from reelreason.main import app
from reelreason.schemas import Movie
from reelreason.store import RecordStore, now_ms

ASGI_BASE_URL = "http://reelreason.test/api"


def movie(mid: str, *genres: str, title: str = None, popularity: float = 1.0, overview: str = "") -> Movie:
    return Movie(id=mid, title=title or mid.title(), genres=list(genres), overview=overview, popularity=popularity)


class DatabaseMixin:
    """테스트마다 새 SQLite 파일을 만들고 get_db 의존성을 그쪽으로 돌립니다."""

    def setUp(self):
        super().setUp()
        self._tmp = tempfile.TemporaryDirectory()
        self.db_engine = make_engine(f"sqlite:///{os.path.join(self._tmp.name, 'test.db')}")
        Base.metadata.create_all(bind=self.db_engine)
        self.Session = sessionmaker(autocommit=False, autoflush=False, bind=self.db_engine)

        def override_get_db():
            db = self.Session()
            try:
                yield db
            finally:
                db.close()

        app.dependency_overrides[get_db] = override_get_db

    def tearDown(self):
        app.dependency_overrides.pop(get_db, None)
        self.db_engine.dispose()
        self._tmp.cleanup()
        super().tearDown()

    def add_users(self, *user_ids: str) -> None:
        db = self.Session()
        try:
            store = RecordStore(db)
            for uid in user_ids:
                store.insert("users", id=uid, email=f"{uid}@example.com", username=uid, name=uid.title(),
                             favorite_genres=[], created_at=now_ms())
            store.commit()
        finally:
            db.close()

    def count_activity(self, type: str) -> int:
        db = self.Session()
        try:
            return len(RecordStore(db).select("activity", type=type))
        finally:
            db.close()


class ApiTestCase(DatabaseMixin, unittest.TestCase):
    def setUp(self):
        super().setUp()
        self.client = TestClient(app)


class AsyncApiTestCase(DatabaseMixin, unittest.IsolatedAsyncioTestCase):
    """CloudClient 가 네트워크 없이 앱을 직접 호출하도록 ASGITransport 를 씁니다."""

    def cloud_client(self) -> CloudClient:
        return CloudClient(base_url=ASGI_BASE_URL, transport=httpx.ASGITransport(app=app))
