import csv
import sys

from pydantic import ValidationError
from sqlalchemy.orm import Session

from database.db import SessionLocal
from models.grades import Grade as GradeModel  # ✅ 모델 import
from schemas.grades import GradeCreate

CSV_PATH = "data/grades.csv"  # ✅ 파일 경로


def load_grade_rows(csvfile):
    """
    CSV 행 → GradeCreate 목록
    - 필수 컬럼: student_id, subject_id, class_id, report_period_id, value, max_value
    - 선택 컬럼: weight(기본 1.0), grade_type(기본 exam), exam_id, notes
    - value > max_value 등 잘못된 행이 하나라도 있으면 전체 중단 (ValueError)
    """
    reader = csv.DictReader(csvfile)
    rows = []
    for line_no, row in enumerate(reader, start=2):
        data = {k: v for k, v in row.items() if v not in (None, "")}
        try:
            rows.append(GradeCreate(**data))
        except ValidationError as e:
            raise ValueError(f"{line_no}행 오류: {e.errors()[0]['msg']}") from e
    return rows


def migrate_grades(path: str = CSV_PATH) -> int:
    db: Session = SessionLocal()
    try:
        with open(path, newline="", encoding="utf-8-sig") as csvfile:
            grades = load_grade_rows(csvfile)

        db.add_all([GradeModel(**g.model_dump()) for g in grades])
        db.commit()
    except Exception:
        db.rollback()
        raise
    finally:
        db.close()

    print(f"✅ 성적 CSV → DB 마이그레이션 완료 ({len(grades)}건)")
    return len(grades)


if __name__ == "__main__":
    migrate_grades(sys.argv[1] if len(sys.argv) > 1 else CSV_PATH)
