"""
services/grading/grade_store.py

성적 집계에 필요한 원천 데이터 조회 (읽기 전용)
- 학생/과목 단위 조회와 함께, 학급 · 기간 전체 성적을 한 번에 가져와
  (학생, 과목) 으로 묶어 주는 일괄 조회를 제공합니다.
"""

import logging
from collections import defaultdict
from typing import Dict, List, Sequence, Tuple

from sqlalchemy import and_
from sqlalchemy.orm import Session

from config.settings import settings
from models.grades import Grade as GradeModel
from models.schools import GradingScale as GradingScaleModel
from models.schools import SchoolSetting as SchoolSettingModel
from models.students import Student as StudentModel
from models.subjects import Subject as SubjectModel
from models.subjects import SubjectCoefficient as SubjectCoefficientModel
from services.grading.calculators import GradeEntry

logger = logging.getLogger(__name__)

GRADING_SCALE_SETTING_KEY = "grading_scale_id"


def _to_entry(grade: GradeModel) -> GradeEntry:
    return GradeEntry(
        value=float(grade.value),
        max_value=float(grade.max_value),
        weight=float(grade.weight if grade.weight is not None else 1.0),
        grade_id=grade.id,
    )


class GradeStore:
    def __init__(self, db: Session):
        self.db = db

    # ✅ 한 학생 · 한 과목 · 한 기간 성적
    def list_grades(self, student_id: int, subject_id: int, report_period_id: int) -> List[GradeEntry]:
        rows = (
            self.db.query(GradeModel)
            .filter(
                GradeModel.student_id == student_id,
                GradeModel.subject_id == subject_id,
                GradeModel.report_period_id == report_period_id,
            )
            .order_by(GradeModel.id)
            .all()
        )
        return [_to_entry(g) for g in rows]

    # ✅ 학급 · 기간 전체 성적 일괄 조회 → {(학생, 과목): [GradeEntry]}
    def list_class_grades(
        self, student_ids: Sequence[int], report_period_id: int
    ) -> Dict[Tuple[int, int], List[GradeEntry]]:
        grouped: Dict[Tuple[int, int], List[GradeEntry]] = defaultdict(list)
        if not student_ids:
            return grouped

        rows = (
            self.db.query(GradeModel)
            .filter(
                GradeModel.student_id.in_(list(student_ids)),
                GradeModel.report_period_id == report_period_id,
            )
            .order_by(GradeModel.id)
            .all()
        )
        for grade in rows:
            grouped[(grade.student_id, grade.subject_id)].append(_to_entry(grade))

        logger.debug(f"성적 일괄 조회: period={report_period_id}, rows={len(rows)}, groups={len(grouped)}")
        return grouped

    # ✅ 학급 재학생 ID (비활성 학생 제외)
    def list_active_students(self, class_id: int) -> List[int]:
        rows = (
            self.db.query(StudentModel.id)
            .filter(StudentModel.class_id == class_id, StudentModel.is_active.is_(True))
            .order_by(StudentModel.id)
            .all()
        )
        return [r[0] for r in rows]

    # ✅ 활성 과목 + 학급별 계수 (계수 행이 없으면 1.0)
    def list_subjects_with_coefficients(self, class_id: int) -> List[Tuple[int, float]]:
        rows = (
            self.db.query(SubjectModel.id, SubjectCoefficientModel.coefficient)
            .outerjoin(
                SubjectCoefficientModel,
                and_(
                    SubjectCoefficientModel.subject_id == SubjectModel.id,
                    SubjectCoefficientModel.class_id == class_id,
                ),
            )
            .filter(SubjectModel.is_active.is_(True))
            .order_by(SubjectModel.id)
            .all()
        )
        return [(subject_id, float(coef) if coef is not None else 1.0) for subject_id, coef in rows]

    # ✅ 학교 활성 채점 척도의 만점
    def get_grading_scale_ceiling(self, school_id: int) -> float:
        """
        조회 순서: 학교 설정(grading_scale_id) → 기본 척도(is_default) → settings.DEFAULT_GRADING_SCALE_MAX
        """
        setting = (
            self.db.query(SchoolSettingModel)
            .filter(
                SchoolSettingModel.school_id == school_id,
                SchoolSettingModel.setting_key == GRADING_SCALE_SETTING_KEY,
            )
            .first()
        )
        if setting is not None and setting.setting_value:
            try:
                scale_id = int(setting.setting_value)
            except ValueError:
                logger.warning(f"잘못된 grading_scale_id 설정: school={school_id}, value={setting.setting_value!r}")
            else:
                scale = self.db.get(GradingScaleModel, scale_id)
                if scale is not None and scale.max_value and scale.max_value > 0:
                    return float(scale.max_value)

        default_scale = (
            self.db.query(GradingScaleModel)
            .filter(GradingScaleModel.is_default.is_(True))
            .order_by(GradingScaleModel.id)
            .first()
        )
        if default_scale is not None and default_scale.max_value and default_scale.max_value > 0:
            return float(default_scale.max_value)

        return settings.DEFAULT_GRADING_SCALE_MAX
