from sqlalchemy import Column, Integer, String, Boolean, ForeignKey
from database.db import Base

class Student(Base):
    __tablename__ = "students"  # 학생 기본 정보 테이블

    id = Column(Integer, primary_key=True, index=True)               # 고유 학생 ID (Primary Key)
    school_id = Column(Integer, ForeignKey("schools.id", ondelete="CASCADE"), nullable=False)  # 소속 학교
    class_id = Column(Integer, ForeignKey("classes.id", ondelete="SET NULL"), index=True)     # 소속 반 ID
    student_name = Column(String(100), nullable=False)              # 학생 이름
    email = Column(String(200))                                     # 이메일
    is_active = Column(Boolean, nullable=False, default=True)       # 재학 여부 (비활성 학생은 성적표 제외)
