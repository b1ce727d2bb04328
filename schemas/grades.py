from typing import Literal, Optional

from pydantic import BaseModel, ConfigDict, Field, model_validator

GradeType = Literal["exam", "quiz", "homework", "project", "participation", "other"]

# ✅ 공통 필드 (검증 규칙 없음)
class GradeBase(BaseModel):
    student_id: int                          # 학생 ID
    subject_id: int                          # 과목 ID
    class_id: int                            # 학급 ID
    report_period_id: int                    # 평가 기간 ID
    exam_id: Optional[int] = None            # 시험 ID (선택)
    grade_type: str = "exam"                 # 성적 유형
    value: float                             # 취득 점수
    max_value: float                         # 만점
    weight: float = 1.0                      # 가중치
    notes: Optional[str] = None              # 교사 코멘트


# ✅ 입력용: 성적 등록
class GradeCreate(GradeBase):
    grade_type: GradeType = "exam"
    value: float = Field(..., ge=0)
    max_value: float = Field(..., gt=0)
    weight: float = Field(1.0, gt=0)

    @model_validator(mode="after")
    def _value_within_max(self):
        if self.value > self.max_value:
            raise ValueError(f"value({self.value})는 max_value({self.max_value})를 넘을 수 없습니다")
        return self


# ✅ 입력용: 성적 수정 (부분 수정)
class GradeUpdate(BaseModel):
    grade_type: Optional[GradeType] = None
    value: Optional[float] = Field(default=None, ge=0)
    max_value: Optional[float] = Field(default=None, gt=0)
    weight: Optional[float] = Field(default=None, gt=0)
    notes: Optional[str] = None


# ✅ 출력용: DB 에 잘못 저장된 성적도 그대로 보여줌
class Grade(GradeBase):
    id: int

    model_config = ConfigDict(from_attributes=True)
