from datetime import datetime, timezone

from sqlalchemy import Column, Integer, Float, String, Text, DateTime, ForeignKey, UniqueConstraint
from sqlalchemy.orm import relationship
from database.db import Base

# 성적표 상태: draft → published → archived
REPORT_CARD_STATUSES = ("draft", "published", "archived")


def _utcnow():
    return datetime.now(timezone.utc)


class ReportCard(Base):
    __tablename__ = "report_cards"  # 학생별 성적표 (학급 + 평가 기간 단위)

    id = Column(Integer, primary_key=True, index=True)
    student_id = Column(Integer, ForeignKey("students.id", ondelete="CASCADE"), nullable=False, index=True)
    class_id = Column(Integer, ForeignKey("classes.id", ondelete="CASCADE"), nullable=False, index=True)
    report_period_id = Column(Integer, ForeignKey("report_periods.id", ondelete="CASCADE"), nullable=False, index=True)

    # 통계 (생성 시점 기준 값)
    overall_average = Column(Float)       # 학생 전체 평균 (예: 15.50)
    class_average = Column(Float)         # 학급 평균
    min_average = Column(Float)           # 학급 최저 평균
    max_average = Column(Float)           # 학급 최고 평균
    rank = Column(Integer)                # 학급 내 석차
    total_students = Column(Integer)      # 학급 재적 인원

    appreciation = Column(Text)           # 종합 의견 (담임/교장)
    status = Column(String(20), nullable=False, default="draft")
    generated_at = Column(DateTime(timezone=True), default=_utcnow)

    # ✅ 과목별 상세 (성적표 삭제 시 함께 삭제)
    subjects = relationship(
        "ReportCardSubject",
        back_populates="report_card",
        cascade="all, delete-orphan",
        passive_deletes=True,
    )

    __table_args__ = (
        UniqueConstraint("student_id", "class_id", "report_period_id", name="uq_report_card_student_period"),
    )


class ReportCardSubject(Base):
    __tablename__ = "report_card_subjects"  # 성적표 과목별 상세

    id = Column(Integer, primary_key=True, index=True)
    report_card_id = Column(Integer, ForeignKey("report_cards.id", ondelete="CASCADE"), nullable=False, index=True)
    subject_id = Column(Integer, ForeignKey("subjects.id", ondelete="CASCADE"), nullable=False)

    subject_average = Column(Float)        # 학생의 과목 평균
    class_subject_average = Column(Float)  # 학급 과목 평균
    min_subject_average = Column(Float)    # 학급 과목 최저
    max_subject_average = Column(Float)    # 학급 과목 최고
    coefficient = Column(Float, default=1.0)
    rank_in_subject = Column(Integer)      # 과목 내 석차

    appreciation = Column(Text)            # 과목 교사 코멘트

    report_card = relationship("ReportCard", back_populates="subjects")
