from sqlalchemy import Column, Integer, String, Date, Boolean, ForeignKey
from database.db import Base

class ReportPeriod(Base):
    __tablename__ = "report_periods"  # 평가 기간 (학기, 분기 등)

    id = Column(Integer, primary_key=True, index=True)
    school_id = Column(Integer, ForeignKey("schools.id", ondelete="CASCADE"), nullable=False)  # 소속 학교
    name = Column(String(100), nullable=False)                # 예: "Trimestre 1"
    period_type = Column(String(50), nullable=False, default="trimester")  # trimester/semester/quarter/monthly/custom
    school_year = Column(String(20), nullable=False)          # 예: "2024-2025"
    start_date = Column(Date)
    end_date = Column(Date)
    is_active = Column(Boolean, default=True)
    order_number = Column(Integer)                            # 표시 순서
