from datetime import datetime
from typing import Literal, Optional

from pydantic import BaseModel, ConfigDict, Field, field_validator

BadgeType = Literal["academic", "behavior", "sport", "art", "other"]

# ✅ 배지 자동 수여 조건 (알 수 없는 키는 그대로 보관)
class BadgeCriteria(BaseModel):
    min_average: Optional[float] = Field(default=None, ge=0, description="전체 평균 하한 (이상)")
    rank: Optional[int] = Field(default=None, ge=1, description="정확히 일치해야 하는 석차")

    model_config = ConfigDict(extra="allow")


# ✅ 입력용: 배지 생성
class BadgeCreate(BaseModel):
    name: str = Field(..., min_length=1, max_length=100)
    description: Optional[str] = None
    icon_url: Optional[str] = None
    criteria: Optional[BadgeCriteria] = None      # 없으면 수동 수여 전용
    badge_type: BadgeType = "academic"


# ✅ 입력용: 수동 수여
class BadgeAwardRequest(BaseModel):
    student_id: int = Field(..., gt=0)
    badge_id: int = Field(..., gt=0)
    awarded_by: Optional[int] = None


# ✅ 출력용
class Badge(BaseModel):
    id: int
    name: str
    description: Optional[str] = None
    icon_url: Optional[str] = None
    criteria: Optional[dict] = None
    badge_type: Optional[str] = None
    created_at: Optional[datetime] = None

    model_config = ConfigDict(from_attributes=True)


class StudentBadge(BaseModel):
    id: int
    student_id: int
    badge_id: int
    awarded_at: Optional[datetime] = None
    awarded_by: Optional[int] = None
    name: Optional[str] = None
    description: Optional[str] = None
    icon_url: Optional[str] = None
    badge_type: Optional[str] = None

    model_config = ConfigDict(from_attributes=True)
