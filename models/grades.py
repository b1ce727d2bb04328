from sqlalchemy import Column, Integer, Float, String, ForeignKey, CheckConstraint, Index
from database.db import Base

# 허용되는 성적 유형
GRADE_TYPES = ("exam", "quiz", "homework", "project", "participation", "other")

class Grade(Base):
    __tablename__ = "grades"  # 개별 성적 기록 테이블

    id = Column(Integer, primary_key=True, index=True)     # 성적 고유 ID (Primary Key)
    student_id = Column(Integer, ForeignKey("students.id", ondelete="CASCADE"), nullable=False)        # 학생 ID
    subject_id = Column(Integer, ForeignKey("subjects.id", ondelete="CASCADE"), nullable=False)        # 과목 ID
    class_id = Column(Integer, ForeignKey("classes.id", ondelete="CASCADE"), nullable=False)           # 학급 ID
    report_period_id = Column(Integer, ForeignKey("report_periods.id", ondelete="CASCADE"), nullable=False)  # 평가 기간 ID
    exam_id = Column(Integer)                              # 연결된 시험 ID (선택)
    grade_type = Column(String(50), nullable=False, default="exam")  # 성적 유형
    value = Column(Float, nullable=False)                  # 취득 점수
    max_value = Column(Float, nullable=False)              # 해당 평가의 만점
    weight = Column(Float, nullable=False, default=1.0)    # 과목 평균 내 가중치
    notes = Column(String(500))                            # 교사 코멘트

    __table_args__ = (
        Index("ix_grades_class_period", "class_id", "report_period_id"),
        CheckConstraint("max_value > 0", name="ck_grades_max_positive"),
        CheckConstraint("weight > 0", name="ck_grades_weight_positive"),
    )
