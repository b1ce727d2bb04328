from datetime import datetime
from typing import List, Literal, Optional

from pydantic import BaseModel, ConfigDict, Field

# ✅ 입력용: 성적표 생성 요청
class GenerateReportCardsRequest(BaseModel):
    class_id: int = Field(..., gt=0, description="학급 ID")
    report_period_id: int = Field(..., gt=0, description="평가 기간 ID")


# ✅ 입력용: 상태 변경 요청
class ReportCardStatusUpdate(BaseModel):
    status: Literal["draft", "published", "archived"]
    appreciation: Optional[str] = None           # 종합 의견 (선택)


# ✅ 출력용: 성적표 과목 상세
class ReportCardSubjectOut(BaseModel):
    id: int
    subject_id: int
    subject_name: Optional[str] = None
    subject_code: Optional[str] = None
    subject_average: Optional[float] = None      # 학생 과목 평균
    class_subject_average: Optional[float] = None
    min_subject_average: Optional[float] = None
    max_subject_average: Optional[float] = None
    coefficient: float = 1.0
    rank_in_subject: Optional[int] = None
    appreciation: Optional[str] = None

    model_config = ConfigDict(from_attributes=True)


# ✅ 출력용: 성적표
class ReportCardOut(BaseModel):
    id: int
    student_id: int
    class_id: int
    report_period_id: int
    overall_average: Optional[float] = None
    class_average: Optional[float] = None
    min_average: Optional[float] = None
    max_average: Optional[float] = None
    rank: Optional[int] = None
    total_students: Optional[int] = None
    appreciation: Optional[str] = None
    status: str
    generated_at: Optional[datetime] = None
    student_name: Optional[str] = None
    student_email: Optional[str] = None

    model_config = ConfigDict(from_attributes=True)


# ✅ 출력용: 성적표 상세 (과목 포함)
class ReportCardDetailOut(ReportCardOut):
    class_name: Optional[str] = None
    period_name: Optional[str] = None
    school_year: Optional[str] = None
    subjects: List[ReportCardSubjectOut] = []
