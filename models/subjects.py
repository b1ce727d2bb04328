from sqlalchemy import Column, Integer, String, Float, Boolean, ForeignKey, UniqueConstraint
from database.db import Base

class Subject(Base):
    __tablename__ = "subjects"  # 과목 정보 테이블

    id = Column(Integer, primary_key=True, index=True)         # 과목 고유 ID (Primary Key)
    name = Column(String(100), nullable=False)                # 과목 이름 (예: 수학, 영어)
    code = Column(String(20), unique=True)                    # 과목 코드 (예: MATH)
    description = Column(String(500))                         # 설명
    is_active = Column(Boolean, nullable=False, default=True) # 사용 여부


class SubjectCoefficient(Base):
    __tablename__ = "subject_coefficients"  # 학급별 과목 계수

    id = Column(Integer, primary_key=True, index=True)
    subject_id = Column(Integer, ForeignKey("subjects.id", ondelete="CASCADE"), nullable=False)
    class_id = Column(Integer, ForeignKey("classes.id", ondelete="CASCADE"), nullable=False)
    coefficient = Column(Float, nullable=False, default=1.0)  # 전체 평균 가중치 (행이 없으면 1.0)

    __table_args__ = (
        UniqueConstraint("subject_id", "class_id", name="uq_subject_coefficient_class"),
    )
