from sqlalchemy import Column, Integer, String, Float, Boolean, ForeignKey, UniqueConstraint
from database.db import Base


class School(Base):
    __tablename__ = "schools"  # 학교 테이블

    id = Column(Integer, primary_key=True, index=True)      # 학교 고유 ID (PK)
    name = Column(String(200), nullable=False)              # 학교 이름


class GradingScale(Base):
    __tablename__ = "grading_scales"  # 채점 척도 (예: /10, /20, /100)

    id = Column(Integer, primary_key=True, index=True)      # 척도 고유 ID (PK)
    name = Column(String(50), nullable=False)               # 표시 이름 (예: "Sur 20")
    max_value = Column(Float, nullable=False)               # 만점 (예: 20.0)
    min_value = Column(Float, default=0.0)                  # 최저점
    is_default = Column(Boolean, default=False)             # 기본 척도 여부


class SchoolSetting(Base):
    __tablename__ = "school_settings"  # 학교별 설정 (key/value)

    id = Column(Integer, primary_key=True, index=True)
    school_id = Column(Integer, ForeignKey("schools.id", ondelete="CASCADE"), nullable=False)
    setting_key = Column(String(100), nullable=False)       # 예: grading_scale_id
    setting_value = Column(String(500))                     # 설정 값 (문자열 저장)

    __table_args__ = (
        UniqueConstraint("school_id", "setting_key", name="uq_school_setting_key"),
    )
