import logging

from fastapi import FastAPI, Request
from fastapi.responses import JSONResponse

from schemas.common import ErrorDetail, ErrorResponse
from services.grading.errors import ReportCardError

logger = logging.getLogger(__name__)


def _error_response(status_code: int, code: str, message: str) -> JSONResponse:
    body = ErrorResponse(error=ErrorDetail(code=code, message=message))
    return JSONResponse(status_code=status_code, content=body.model_dump(mode="json"))


def add_error_handlers(app: FastAPI):
    # ✅ 성적 집계/성적표 도메인 오류 → 예외에 정의된 상태 코드 그대로
    @app.exception_handler(ReportCardError)
    async def report_card_exception_handler(request: Request, exc: ReportCardError):
        return _error_response(exc.status_code, exc.code, exc.message)

    # ✅ 그 외 처리되지 않은 오류 → 500 (내부 메시지는 로그로만)
    @app.exception_handler(Exception)
    async def unhandled_exception_handler(request: Request, exc: Exception):
        logger.exception(f"처리되지 않은 오류: {request.method} {request.url.path}")
        return _error_response(500, "INTERNAL_ERROR", "서버 내부 오류가 발생했습니다")
