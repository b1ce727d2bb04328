from fastapi import APIRouter, Depends
from sqlalchemy.orm import Session

from database.db import SessionLocal
from models.badges import Badge as BadgeModel
from models.students import Student as StudentModel
from schemas.badges import Badge as BadgeSchema
from schemas.badges import BadgeAwardRequest, BadgeCreate
from schemas.badges import StudentBadge as StudentBadgeSchema
from services import badge_service

router = APIRouter(prefix="/badges", tags=["배지"])

def get_db():
    db = SessionLocal()
    try:
        yield db
    finally:
        db.close()


# ✅ [READ] 전체 배지 조회 (최신순)
@router.get("/")
def read_badges(db: Session = Depends(get_db)):
    badges = badge_service.list_badges(db)
    return {
        "success": True,
        "data": [BadgeSchema.model_validate(b).model_dump(mode="json") for b in badges],
        "message": "전체 배지 조회 완료",
    }


# ✅ [CREATE] 배지 추가
@router.post("/", status_code=201)
def create_badge(badge: BadgeCreate, db: Session = Depends(get_db)):
    fields = badge.model_dump()
    if badge.criteria is not None:
        fields["criteria"] = badge.criteria.model_dump(exclude_none=True)
    db_badge = badge_service.create_badge(db, **fields)
    return {
        "success": True,
        "data": BadgeSchema.model_validate(db_badge).model_dump(mode="json"),
        "message": "배지가 성공적으로 추가되었습니다",
    }


# ✅ [AWARD] 배지 수동 수여
@router.post("/award")
def award_badge(body: BadgeAwardRequest, db: Session = Depends(get_db)):
    if db.get(StudentModel, body.student_id) is None:
        return {"success": False, "error": {"code": 404, "message": "학생을 찾을 수 없습니다"}}
    if db.get(BadgeModel, body.badge_id) is None:
        return {"success": False, "error": {"code": 404, "message": "배지를 찾을 수 없습니다"}}

    awarded = badge_service.award_manually(db, body.student_id, body.badge_id, body.awarded_by)
    if awarded is None:
        return {"success": False, "error": {"code": 409, "message": "이미 수여된 배지입니다"}}

    return {
        "success": True,
        "data": {
            "id": awarded.id,
            "student_id": awarded.student_id,
            "badge_id": awarded.badge_id,
            "awarded_by": awarded.awarded_by,
        },
        "message": "배지가 수여되었습니다",
    }


# ✅ [READ] 학생 보유 배지 (최근 수여순)
@router.get("/student/{student_id}")
def read_student_badges(student_id: int, db: Session = Depends(get_db)):
    rows = badge_service.list_student_badges(db, student_id)
    return {
        "success": True,
        "data": [StudentBadgeSchema.model_validate(r).model_dump(mode="json") for r in rows],
        "message": "학생 배지 조회 완료",
    }
