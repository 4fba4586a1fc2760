# ------------------------------------------------------------
# errors.py - 서버/클라이언트 공통 오류 분류
# ------------------------------------------------------------


class ReelReasonError(Exception):
    """모든 도메인 오류의 베이스. status_code 는 HTTP 응답 코드와 1:1 대응."""

    status_code = 500

    def __init__(self, detail: str = ""):
        super().__init__(detail or self.__class__.__name__)
        self.detail = detail or self.__class__.__name__


class NotFound(ReelReasonError):
    status_code = 404


class InvalidCredential(ReelReasonError):
    status_code = 401


class NotYourTurn(ReelReasonError):
    status_code = 403


class UsernameTaken(ReelReasonError):
    status_code = 409


class ChallengeClosed(ReelReasonError):
    status_code = 409


class InsufficientPool(ReelReasonError):
    status_code = 422


class Unavailable(ReelReasonError):
    """전송 계층 실패. 호출 측에서 언제든 재시도 가능."""

    status_code = 503


_BY_STATUS = {
    404: NotFound,
    401: InvalidCredential,
    403: NotYourTurn,
    503: Unavailable,
}


def error_for_status(status_code: int, detail: str = "") -> ReelReasonError:
    """HTTP 응답 코드를 도메인 오류로 되돌립니다 (클라이언트 측에서 사용)."""
    if status_code == 409:
        # 409 는 두 종류라서 detail 로 구분
        if "username" in detail.lower():
            return UsernameTaken(detail)
        return ChallengeClosed(detail)
    if status_code in _BY_STATUS:
        return _BY_STATUS[status_code](detail)
    if status_code >= 500:
        return Unavailable(detail or f"server error {status_code}")
    # 요청 검증 실패(422) 등은 분류 없이 원래 코드만 보존
    err = ReelReasonError(detail or f"unexpected status {status_code}")
    err.status_code = status_code
    return err
