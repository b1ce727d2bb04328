import os

# ✅ 앱 모듈 import 전에 테스트 DB 지정 (MySQL 드라이버 없이도 동작)
os.environ.setdefault("DB_URL_OVERRIDE", "sqlite://")

from types import SimpleNamespace

import pytest
from fastapi.testclient import TestClient
from sqlalchemy.pool import StaticPool

from database.db import Base, SessionLocal, build_engine
from database.init_db import init_db
from models.classes import Class as ClassModel
from models.grades import Grade as GradeModel
from models.report_periods import ReportPeriod as ReportPeriodModel
from models.schools import School as SchoolModel
from models.students import Student as StudentModel
from models.subjects import Subject as SubjectModel
from models.subjects import SubjectCoefficient as SubjectCoefficientModel

# 모든 세션(백그라운드 작업 포함)이 같은 인메모리 DB 를 보도록 단일 연결 사용
test_engine = build_engine("sqlite://", poolclass=StaticPool)
SessionLocal.configure(bind=test_engine)


@pytest.fixture
def db():
    init_db(bind=test_engine)
    session = SessionLocal()
    try:
        yield session
    finally:
        session.close()
        Base.metadata.drop_all(bind=test_engine)


@pytest.fixture
def client(db):
    from main import app

    with TestClient(app) as c:
        yield c


class Seeder:
    """테스트 데이터 생성 도우미"""

    def __init__(self, db):
        self.db = db

    def _save(self, obj):
        self.db.add(obj)
        self.db.commit()
        self.db.refresh(obj)
        return obj

    def school(self, name="Lycée Test"):
        return self._save(SchoolModel(name=name))

    def klass(self, school, name="6e A"):
        return self._save(ClassModel(school_id=school.id, name=name, school_year="2024-2025"))

    def period(self, school, name="Trimestre 1"):
        return self._save(
            ReportPeriodModel(school_id=school.id, name=name, period_type="trimester", school_year="2024-2025")
        )

    def subject(self, name, code=None, is_active=True):
        return self._save(SubjectModel(name=name, code=code, is_active=is_active))

    def coefficient(self, subject, klass, value):
        return self._save(SubjectCoefficientModel(subject_id=subject.id, class_id=klass.id, coefficient=value))

    def student(self, klass, name, is_active=True):
        return self._save(
            StudentModel(school_id=klass.school_id, class_id=klass.id, student_name=name, is_active=is_active)
        )

    def grade(self, student, subject, period, value, max_value=20.0, weight=1.0, grade_type="exam"):
        return self._save(
            GradeModel(
                student_id=student.id,
                subject_id=subject.id,
                class_id=student.class_id,
                report_period_id=period.id,
                grade_type=grade_type,
                value=value,
                max_value=max_value,
                weight=weight,
            )
        )


@pytest.fixture
def seed(db):
    return Seeder(db)


@pytest.fixture
def classroom(seed):
    """학교 1 · 학급 1 · 기간 1 · 과목 1(계수 1) · 학생 3명 (18/20, 10/20, 14/20)"""
    school = seed.school()
    klass = seed.klass(school)
    period = seed.period(school)
    math = seed.subject("Mathématiques", code="MATH")
    students = [seed.student(klass, name) for name in ("Alice", "Bruno", "Chloé")]
    for student, value in zip(students, (18, 10, 14)):
        seed.grade(student, math, period, value)
    return SimpleNamespace(school=school, klass=klass, period=period, math=math, students=students)
