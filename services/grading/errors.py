"""
services/grading/errors.py

성적 집계 / 성적표 생성 엔진에서 사용하는 예외 모음.
- 모든 예외는 ReportCardError 를 상속하며 HTTP 상태 코드와 에러 코드를 함께 가집니다.
- middlewares/error_handler.py 에서 공통 JSON 에러 포맷으로 변환됩니다.
"""


class ReportCardError(Exception):
    status_code = 500
    code = "REPORT_CARD_ERROR"

    def __init__(self, message: str, *, status_code: int | None = None):
        super().__init__(message)
        self.message = message
        if status_code is not None:
            self.status_code = status_code


class InvalidGenerationRequest(ReportCardError):
    """잘못된 학급/기간 ID, 재학생 없음 등 입력 오류 (데이터 변경 전 발생)"""
    status_code = 400
    code = "INVALID_REQUEST"


class GradeInvariantError(ReportCardError):
    """집계 중 발견된 데이터 무결성 위반 (예: value > max_value)"""
    status_code = 422
    code = "GRADE_INVARIANT_VIOLATION"

    def __init__(self, message: str, *, grade_id: int | None = None):
        super().__init__(message)
        self.grade_id = grade_id


class GenerationInProgressError(ReportCardError):
    status_code = 409
    code = "GENERATION_IN_PROGRESS"


class GenerationTimeoutError(ReportCardError):
    status_code = 504
    code = "GENERATION_TIMEOUT"


class ReportCardStorageError(ReportCardError):
    """쓰기 단계의 DB 오류 (롤백 후 감싸서 전달)"""
    status_code = 500
    code = "STORAGE_ERROR"


class ReportCardNotFound(ReportCardError):
    status_code = 404
    code = "NOT_FOUND"


class InvalidStatusTransition(ReportCardError):
    status_code = 409
    code = "INVALID_STATUS_TRANSITION"
