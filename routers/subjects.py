from fastapi import APIRouter, Depends
from sqlalchemy.orm import Session
from database.db import SessionLocal
from models.classes import Class as ClassModel
from models.subjects import Subject as SubjectModel
from models.subjects import SubjectCoefficient as SubjectCoefficientModel
from schemas.subjects import Subject as SubjectSchema
from schemas.subjects import SubjectCoefficientUpdate, SubjectCreate

router = APIRouter(prefix="/subjects", tags=["과목 정보"])

def get_db():
    db = SessionLocal()
    try:
        yield db
    finally:
        db.close()

def _subject_to_dict(subject: SubjectModel) -> dict:
    return SubjectSchema.model_validate(subject).model_dump()


# ✅ [CREATE] 과목 정보 추가
@router.post("/")
def create_subject(subject: SubjectCreate, db: Session = Depends(get_db)):
    db_subject = SubjectModel(**subject.model_dump())
    db.add(db_subject)
    db.commit()
    db.refresh(db_subject)
    return {
        "success": True,
        "data": _subject_to_dict(db_subject),
        "message": "과목 정보가 성공적으로 추가되었습니다"
    }


# ✅ [READ] 전체 과목 조회
@router.get("/")
def read_subjects(db: Session = Depends(get_db)):
    records = db.query(SubjectModel).order_by(SubjectModel.name).all()
    return {
        "success": True,
        "data": [_subject_to_dict(r) for r in records],
        "message": "전체 과목 조회 완료"
    }


# ✅ [READ] 특정 과목 조회 (학급별 계수 포함)
@router.get("/{subject_id}")
def read_subject(subject_id: int, db: Session = Depends(get_db)):
    subject = db.get(SubjectModel, subject_id)
    if subject is None:
        return {
            "success": False,
            "error": {"code": 404, "message": "과목 정보를 찾을 수 없습니다"}
        }
    coefficients = (
        db.query(SubjectCoefficientModel)
        .filter(SubjectCoefficientModel.subject_id == subject_id)
        .order_by(SubjectCoefficientModel.class_id)
        .all()
    )
    data = _subject_to_dict(subject)
    data["coefficients"] = [{"class_id": c.class_id, "coefficient": c.coefficient} for c in coefficients]
    return {
        "success": True,
        "data": data,
        "message": "과목 상세 조회 성공"
    }


# ✅ [UPDATE] 과목 정보 수정
@router.put("/{subject_id}")
def update_subject(subject_id: int, updated: SubjectCreate, db: Session = Depends(get_db)):
    subject = db.get(SubjectModel, subject_id)
    if subject is None:
        return {
            "success": False,
            "error": {"code": 404, "message": "과목 정보를 찾을 수 없습니다"}
        }

    for key, value in updated.model_dump().items():
        setattr(subject, key, value)

    db.commit()
    db.refresh(subject)
    return {
        "success": True,
        "data": _subject_to_dict(subject),
        "message": "과목 정보가 성공적으로 수정되었습니다"
    }


# ✅ [UPSERT] 학급별 과목 계수 설정
@router.put("/{subject_id}/coefficients")
def set_subject_coefficient(subject_id: int, body: SubjectCoefficientUpdate, db: Session = Depends(get_db)):
    if db.get(SubjectModel, subject_id) is None:
        return {"success": False, "error": {"code": 404, "message": "과목 정보를 찾을 수 없습니다"}}
    if db.get(ClassModel, body.class_id) is None:
        return {"success": False, "error": {"code": 404, "message": "학급 정보를 찾을 수 없습니다"}}

    row = (
        db.query(SubjectCoefficientModel)
        .filter(
            SubjectCoefficientModel.subject_id == subject_id,
            SubjectCoefficientModel.class_id == body.class_id,
        )
        .first()
    )
    if row is None:
        row = SubjectCoefficientModel(subject_id=subject_id, class_id=body.class_id)
        db.add(row)
    row.coefficient = body.coefficient

    db.commit()
    return {
        "success": True,
        "data": {"subject_id": subject_id, "class_id": body.class_id, "coefficient": row.coefficient},
        "message": "과목 계수가 설정되었습니다"
    }


# ✅ [DELETE] 과목 삭제
@router.delete("/{subject_id}")
def delete_subject(subject_id: int, db: Session = Depends(get_db)):
    subject = db.get(SubjectModel, subject_id)
    if subject is None:
        return {
            "success": False,
            "error": {"code": 404, "message": "과목 정보를 찾을 수 없습니다"}
        }

    db.delete(subject)
    db.commit()
    return {
        "success": True,
        "data": {"subject_id": subject_id},
        "message": "과목 정보가 성공적으로 삭제되었습니다"
    }
