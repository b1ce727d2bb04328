from datetime import datetime, timezone

from sqlalchemy import Column, Integer, String, Text, JSON, DateTime, ForeignKey, UniqueConstraint
from database.db import Base

# 배지 분류
BADGE_TYPES = ("academic", "behavior", "sport", "art", "other")


def _utcnow():
    return datetime.now(timezone.utc)


class Badge(Base):
    __tablename__ = "badges"  # 업적 배지

    id = Column(Integer, primary_key=True, index=True)
    name = Column(String(100), nullable=False)
    description = Column(Text)
    icon_url = Column(Text)
    criteria = Column(JSON(none_as_null=True))                # 자동 수여 조건 (예: {"min_average": 18} / {"rank": 1}), NULL이면 수동 전용
    badge_type = Column(String(50), default="academic")
    created_at = Column(DateTime(timezone=True), default=_utcnow)


class StudentBadge(Base):
    __tablename__ = "student_badges"  # 학생-배지 수여 기록

    id = Column(Integer, primary_key=True, index=True)
    student_id = Column(Integer, ForeignKey("students.id", ondelete="CASCADE"), nullable=False, index=True)
    badge_id = Column(Integer, ForeignKey("badges.id", ondelete="CASCADE"), nullable=False)
    awarded_at = Column(DateTime(timezone=True), default=_utcnow)
    awarded_by = Column(Integer)            # 수동 수여자 ID (자동 수여면 NULL)

    __table_args__ = (
        UniqueConstraint("student_id", "badge_id", name="uq_student_badge"),
    )
