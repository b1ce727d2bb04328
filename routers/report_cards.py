import logging

from fastapi import APIRouter, BackgroundTasks, Depends, Query
from sqlalchemy.orm import Session

from config.settings import settings
from database.db import SessionLocal
from schemas.report_cards import (
    GenerateReportCardsRequest,
    ReportCardDetailOut,
    ReportCardOut,
    ReportCardStatusUpdate,
)
from services import report_card_service
from services.badge_service import handle_report_card_events

logger = logging.getLogger(__name__)

router = APIRouter(prefix="/report-cards", tags=["성적표"])

# ==========================================================
# [공통] DB 세션 관리
# ==========================================================
def get_db():
    db = SessionLocal()
    try:
        yield db
    finally:
        db.close()


# ✅ [GENERATE] 학급 + 평가 기간 성적표 일괄 생성 (기존 성적표는 전체 교체)
# - 생성된 성적표마다 배지 자동 수여 이벤트를 백그라운드로 처리
@router.post("/generate", status_code=201)
def generate_report_cards(
    body: GenerateReportCardsRequest,
    background_tasks: BackgroundTasks,
    db: Session = Depends(get_db),
):
    result = report_card_service.generate_class_report_cards(db, body.class_id, body.report_period_id)

    if settings.BADGE_AUTO_AWARD_ENABLED and result.events:
        background_tasks.add_task(handle_report_card_events, result.events)

    return {
        "success": True,
        "data": {"generated_count": result.generated_count},
        "message": f"성적표 {result.generated_count}건이 생성되었습니다",
    }


# ✅ [READ] 학급 + 평가 기간 성적표 목록 (석차순)
@router.get("/")
def read_class_report_cards(
    class_id: int = Query(..., gt=0),
    report_period_id: int = Query(..., gt=0),
    db: Session = Depends(get_db),
):
    cards = report_card_service.get_class_report_cards(db, class_id, report_period_id)
    return {
        "success": True,
        "data": [ReportCardOut.model_validate(c).model_dump(mode="json") for c in cards],
        "message": "성적표 목록 조회 완료",
    }


# ✅ [READ] 성적표 상세 (과목별 내역 포함)
@router.get("/{report_card_id}")
def read_report_card(report_card_id: int, db: Session = Depends(get_db)):
    detail = report_card_service.get_report_card_detail(db, report_card_id)
    return {
        "success": True,
        "data": ReportCardDetailOut.model_validate(detail).model_dump(mode="json"),
        "message": "성적표 상세 조회 성공",
    }


# ✅ [UPDATE] 성적표 상태 변경 (draft / published / archived)
@router.patch("/{report_card_id}/status")
def update_report_card_status(
    report_card_id: int,
    body: ReportCardStatusUpdate,
    db: Session = Depends(get_db),
):
    card = report_card_service.update_report_card_status(db, report_card_id, body.status, body.appreciation)
    return {
        "success": True,
        "data": {"id": card.id, "status": card.status, "appreciation": card.appreciation},
        "message": "성적표 상태가 변경되었습니다",
    }
