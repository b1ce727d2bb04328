from fastapi import APIRouter, Depends, Query
from sqlalchemy.orm import Session

from database.db import SessionLocal
from models.grades import Grade as GradeModel
from models.students import Student as StudentModel
from schemas.grades import Grade as GradeSchema
from schemas.grades import GradeCreate, GradeUpdate
from services.grading.calculators import GradingConfig, overall_average, round2, subject_average
from services.grading.grade_store import GradeStore

router = APIRouter(prefix="/grades", tags=["grades"])

# ==========================================================
# [공통] DB 세션 관리
# ==========================================================
def get_db():
    db = SessionLocal()
    try:
        yield db
    finally:
        db.close()

def _grade_to_dict(grade: GradeModel) -> dict:
    return GradeSchema.model_validate(grade).model_dump()

# ==========================================================
# [1단계] 평균 계산 라우터 (성적표 생성과 같은 계산기 사용)
# ==========================================================

# ✅ [AVERAGE] 한 학생 · 한 과목 · 한 기간 평균
@router.get("/average")
def get_subject_average(
    student_id: int = Query(..., gt=0),
    subject_id: int = Query(..., gt=0),
    report_period_id: int = Query(..., gt=0),
    db: Session = Depends(get_db),
):
    student = db.get(StudentModel, student_id)
    if student is None:
        return {"success": False, "error": {"code": 404, "message": "Student not found"}}

    store = GradeStore(db)
    grades = store.list_grades(student_id, subject_id, report_period_id)
    if not grades:
        return {"success": True, "data": {"average": None, "percentage": None, "grades_count": 0}}

    config = GradingConfig(scale_max=store.get_grading_scale_ceiling(student.school_id))
    average = subject_average(grades, config)
    return {
        "success": True,
        "data": {
            "average": round2(average),
            "percentage": round2(average / config.scale_max * 100),
            "scale_max": config.scale_max,
            "grades_count": len(grades),
        },
    }

# ✅ [OVERALL] 한 학생 · 한 기간 계수 가중 전체 평균
@router.get("/overall-average")
def get_overall_average(
    student_id: int = Query(..., gt=0),
    report_period_id: int = Query(..., gt=0),
    db: Session = Depends(get_db),
):
    student = db.get(StudentModel, student_id)
    if student is None:
        return {"success": False, "error": {"code": 404, "message": "Student not found"}}
    if student.class_id is None:
        return {"success": False, "error": {"code": 400, "message": "Student has no class"}}

    store = GradeStore(db)
    config = GradingConfig(scale_max=store.get_grading_scale_ceiling(student.school_id))
    grouped = store.list_class_grades([student_id], report_period_id)

    subject_averages = []
    for subject_id, coefficient in store.list_subjects_with_coefficients(student.class_id):
        average = subject_average(grouped.get((student_id, subject_id), []), config)
        if average is not None:
            subject_averages.append({"subject_id": subject_id, "average": average, "coefficient": coefficient})

    overall = overall_average((s["average"], s["coefficient"]) for s in subject_averages)
    return {
        "success": True,
        "data": {
            "overall_average": round2(overall),
            "scale_max": config.scale_max,
            "subject_averages": [
                {**s, "average": round2(s["average"])} for s in subject_averages
            ],
        },
    }

# ==========================================================
# [2단계] CRUD 기본 라우터
# ==========================================================

# ✅ [CREATE] 성적 추가
@router.post("/")
def create_grade(grade: GradeCreate, db: Session = Depends(get_db)):
    db_grade = GradeModel(**grade.model_dump())
    db.add(db_grade)
    db.commit()
    db.refresh(db_grade)
    return {
        "success": True,
        "data": _grade_to_dict(db_grade),
        "message": "Grade created successfully",
    }

# ✅ [READ] 성적 목록 (학생/과목/기간 필터)
@router.get("/")
def read_grades(
    student_id: int | None = None,
    subject_id: int | None = None,
    report_period_id: int | None = None,
    db: Session = Depends(get_db),
):
    query = db.query(GradeModel)
    if student_id is not None:
        query = query.filter(GradeModel.student_id == student_id)
    if subject_id is not None:
        query = query.filter(GradeModel.subject_id == subject_id)
    if report_period_id is not None:
        query = query.filter(GradeModel.report_period_id == report_period_id)
    records = query.order_by(GradeModel.id).all()
    return {"success": True, "data": [_grade_to_dict(r) for r in records]}

# ==========================================================
# [3단계] 완전 동적 라우터
# ==========================================================

# ✅ [READ] 특정 성적 조회
@router.get("/{grade_id}")
def read_grade(grade_id: int, db: Session = Depends(get_db)):
    grade = db.get(GradeModel, grade_id)
    if grade is None:
        return {"success": False, "error": {"code": 404, "message": "Grade not found"}}
    return {"success": True, "data": _grade_to_dict(grade)}

# ✅ [UPDATE] 성적 수정 (value ≤ max_value 유지)
@router.put("/{grade_id}")
def update_grade(grade_id: int, updated: GradeUpdate, db: Session = Depends(get_db)):
    grade = db.get(GradeModel, grade_id)
    if grade is None:
        return {"success": False, "error": {"code": 404, "message": "Grade not found"}}

    # null 값은 기존 값 유지 (COALESCE)
    changes = {k: v for k, v in updated.model_dump(exclude_unset=True).items() if v is not None}
    value = changes.get("value", grade.value)
    max_value = changes.get("max_value", grade.max_value)
    if value > max_value:
        return {
            "success": False,
            "error": {"code": 400, "message": f"value({value}) cannot exceed max_value({max_value})"},
        }

    for key, val in changes.items():
        setattr(grade, key, val)

    db.commit()
    db.refresh(grade)
    return {
        "success": True,
        "data": _grade_to_dict(grade),
        "message": "Grade updated successfully",
    }

# ✅ [DELETE] 성적 삭제
@router.delete("/{grade_id}")
def delete_grade(grade_id: int, db: Session = Depends(get_db)):
    grade = db.get(GradeModel, grade_id)
    if grade is None:
        return {"success": False, "error": {"code": 404, "message": "Grade not found"}}

    db.delete(grade)
    db.commit()
    return {
        "success": True,
        "data": {"grade_id": grade_id, "message": "Grade deleted successfully"}
    }
