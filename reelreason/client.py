# ------------------------------------------------------------
# client.py - 원격 저장소(REST API) 비동기 클라이언트
# ------------------------------------------------------------

import logging
from typing import Any, Dict, Optional

import httpx

from .config import API_BASE_URL, REQUEST_TIMEOUT_SECONDS
from .errors import Unavailable, error_for_status

logger = logging.getLogger(__name__)


def _detail(response: httpx.Response) -> str:
    try:
        body = response.json()
    except ValueError:
        return response.text
    detail = body.get("detail") if isinstance(body, dict) else body
    return detail if isinstance(detail, str) else str(detail)


class CloudClient:
    """
    execute(verb, path, payload) 로 추상 리소스 요청을 보냅니다.

    - GET/DELETE 의 payload 는 쿼리 파라미터, POST/PUT 은 JSON 바디
    - 전송 실패는 Unavailable, HTTP 오류 코드는 도메인 오류로 변환
    - transport 를 넘기면 (예: httpx.ASGITransport) 네트워크 없이 앱을 직접 호출
    """

    def __init__(self, base_url: str = API_BASE_URL, token: Optional[str] = None,
                 transport: Optional[httpx.AsyncBaseTransport] = None,
                 timeout: float = REQUEST_TIMEOUT_SECONDS):
        self.token = token
        self._http = httpx.AsyncClient(base_url=base_url, transport=transport, timeout=timeout)

    async def execute(self, verb: str, path: str, payload: Optional[Dict[str, Any]] = None) -> Any:
        verb = verb.upper()
        headers = {"Authorization": f"Bearer {self.token}"} if self.token else {}
        kwargs: Dict[str, Any] = {}
        if payload is not None:
            if verb in ("GET", "DELETE"):
                kwargs["params"] = {k: v for k, v in payload.items() if v is not None}
            else:
                kwargs["json"] = payload

        try:
            response = await self._http.request(verb, path, headers=headers, **kwargs)
        except httpx.TransportError as exc:
            raise Unavailable(f"{verb} {path}: {exc!r}") from exc

        logger.debug("%s %s -> %d", verb, path, response.status_code)
        if response.status_code >= 400:
            raise error_for_status(response.status_code, _detail(response))
        return response.json()

    async def get(self, path: str, params: Optional[Dict[str, Any]] = None) -> Any:
        return await self.execute("GET", path, params)

    async def post(self, path: str, body: Dict[str, Any]) -> Any:
        return await self.execute("POST", path, body)

    async def put(self, path: str, body: Dict[str, Any]) -> Any:
        return await self.execute("PUT", path, body)

    async def delete(self, path: str, params: Optional[Dict[str, Any]] = None) -> Any:
        return await self.execute("DELETE", path, params)

    # -------------------------------
    # 인증 (외부 협력자: 이메일 일회용 코드)
    # -------------------------------
    async def request_code(self, email: str) -> None:
        await self.post("/auth/otp", {"email": email})

    async def verify_code(self, email: str, code: str) -> Dict[str, Any]:
        result = await self.post("/auth/verify", {"email": email, "code": code})
        if result.get("token"):
            self.token = result["token"]
        return result

    async def signup(self, profile: Dict[str, Any]) -> Dict[str, Any]:
        user = await self.post("/auth/signup", profile)
        self.token = user.get("token") or self.token
        return user

    async def aclose(self) -> None:
        await self._http.aclose()

    async def __aenter__(self):
        return self

    async def __aexit__(self, *exc_info):
        await self.aclose()
