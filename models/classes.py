from sqlalchemy import Column, Integer, String, ForeignKey
from database.db import Base

class Class(Base):
    __tablename__ = "classes"

    id = Column(Integer, primary_key=True, index=True)      # 학급 고유 ID (PK)
    school_id = Column(Integer, ForeignKey("schools.id", ondelete="CASCADE"), nullable=False)  # 소속 학교
    name = Column(String(100), nullable=False)              # 학급 이름 (예: "6e A")
    school_year = Column(String(20))                        # 학년도 (예: "2024-2025")
