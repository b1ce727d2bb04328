from pydantic import BaseModel, ConfigDict, Field
from typing import Optional

# ✅ 입력용: POST 요청에서 사용할 스키마
class SubjectCreate(BaseModel):
    name: str                                # 과목 이름
    code: Optional[str] = None               # 과목 코드 (예: MATH)
    description: Optional[str] = None        # 설명
    is_active: bool = True                   # 사용 여부

# ✅ 입력용: 학급별 계수 설정
class SubjectCoefficientUpdate(BaseModel):
    class_id: int = Field(..., gt=0)         # 학급 ID
    coefficient: float = Field(..., gt=0, le=99.9)  # 계수

# ✅ 출력용: GET, POST 응답 등에서 사용할 스키마
class Subject(BaseModel):
    id: int                                  # 고유 과목 ID
    name: str                                # 과목 이름
    code: Optional[str] = None
    description: Optional[str] = None
    is_active: bool = True

    model_config = ConfigDict(from_attributes=True)   # orm_mode → 최신 Pydantic 문법
