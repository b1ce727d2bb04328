"""
services/grading/calculators.py

성적 집계 순수 함수 모음 (DB 접근 없음)
- 과목 평균: 각 성적을 0~100 으로 정규화 → 가중 평균 → 학교 만점(/20 등)으로 환산
- 전체 평균: 과목 평균 × 계수의 가중 평균 (성적이 있는 과목만)
- 석차: 전체 평균 내림차순, 동점은 같은 석차 (1, 1, 3 …)
- 학급 통계: 전체/과목별 최저 · 최고 · 평균

계산은 모두 원래 정밀도로 진행하고, 저장/표시 시점에만 소수 둘째 자리로 반올림합니다.
"""

from collections import defaultdict
from dataclasses import dataclass, field
from typing import Dict, Iterable, List, Mapping, Optional, Sequence, Tuple

from services.grading.errors import GradeInvariantError


@dataclass(frozen=True)
class GradingConfig:
    """한 번의 생성 작업 동안 고정되는 채점 설정"""
    scale_max: float = 20.0


@dataclass(frozen=True)
class GradeEntry:
    value: float
    max_value: float
    weight: float = 1.0
    grade_id: Optional[int] = None


@dataclass(frozen=True)
class CohortStats:
    min: float
    max: float
    mean: float


@dataclass
class SubjectResult:
    subject_id: int
    average: float
    coefficient: float
    rank_in_subject: Optional[int] = None


@dataclass
class StudentResult:
    student_id: int
    overall_average: float
    subjects: Dict[int, SubjectResult] = field(default_factory=dict)
    rank: Optional[int] = None


@dataclass
class ClassAggregate:
    students: List[StudentResult]
    overall_stats: CohortStats
    subject_stats: Dict[int, CohortStats]


def round2(value: float) -> float:
    return round(value, 2)


# ==========================================================
# [1] 과목 평균
# ==========================================================
def _validate_grade(grade: GradeEntry) -> None:
    if grade.max_value <= 0:
        raise GradeInvariantError(
            f"성적 {grade.grade_id}: max_value 는 0보다 커야 합니다 ({grade.max_value})",
            grade_id=grade.grade_id,
        )
    if grade.weight <= 0:
        raise GradeInvariantError(
            f"성적 {grade.grade_id}: weight 는 0보다 커야 합니다 ({grade.weight})",
            grade_id=grade.grade_id,
        )
    if grade.value < 0 or grade.value > grade.max_value:
        raise GradeInvariantError(
            f"성적 {grade.grade_id}: value {grade.value} 가 허용 범위(0~{grade.max_value})를 벗어났습니다",
            grade_id=grade.grade_id,
        )


def subject_average(grades: Sequence[GradeEntry], config: GradingConfig) -> Optional[float]:
    """
    한 학생 · 한 과목 · 한 기간의 성적으로 과목 평균 계산
    - 성적이 없으면 None (과목 자체를 성적표에서 제외, 0점 처리하지 않음)
    - 반환값은 반올림하지 않은 원래 정밀도
    """
    if not grades:
        return None

    total_score = 0.0
    total_weight = 0.0
    for grade in grades:
        _validate_grade(grade)
        percentage = grade.value / grade.max_value * 100
        total_score += percentage * grade.weight
        total_weight += grade.weight

    average_100 = total_score / total_weight
    return average_100 / 100 * config.scale_max


# ==========================================================
# [2] 전체 평균
# ==========================================================
def overall_average(subject_results: Iterable[Tuple[Optional[float], float]]) -> float:
    """
    (과목 평균, 계수) 목록으로 계수 가중 전체 평균 계산
    - 과목 평균이 None 인 과목은 분자/분모 모두에서 제외
    - 성적이 있는 과목이 하나도 없으면 0.0
    """
    weighted_sum = 0.0
    coefficient_sum = 0.0
    for average, coefficient in subject_results:
        if average is None:
            continue
        weighted_sum += average * coefficient
        coefficient_sum += coefficient

    if coefficient_sum <= 0:
        return 0.0
    return weighted_sum / coefficient_sum


# ==========================================================
# [3] 석차
# ==========================================================
def competition_ranks(scores: Sequence[Tuple[int, float]]) -> Dict[int, int]:
    """
    (id, 점수) 목록 → {id: 석차}
    - 점수 내림차순, 표시 단위(소수 둘째 자리)로 같으면 동점
    - 동점은 같은 석차를 받고 다음 석차는 인원만큼 건너뜀 (1, 1, 3)
    """
    ordered = sorted(scores, key=lambda item: -round2(item[1]))
    ranks: Dict[int, int] = {}
    previous = None
    for position, (key, score) in enumerate(ordered, start=1):
        rounded = round2(score)
        if previous is not None and rounded == previous[1]:
            ranks[key] = previous[0]
        else:
            ranks[key] = position
            previous = (position, rounded)
    return ranks


def rank_students(results: List[StudentResult]) -> List[StudentResult]:
    """전체 평균 기준 석차 부여 후 석차순(동점은 입력 순서 유지)으로 정렬해서 반환"""
    ranks = competition_ranks([(r.student_id, r.overall_average) for r in results])
    for result in results:
        result.rank = ranks[result.student_id]
    return sorted(results, key=lambda r: r.rank)


# ==========================================================
# [4] 학급 통계
# ==========================================================
def cohort_stats(values: Sequence[float]) -> Optional[CohortStats]:
    if not values:
        return None
    return CohortStats(
        min=min(values),
        max=max(values),
        mean=sum(values) / len(values),
    )


def subject_cohort_stats(results: Sequence[StudentResult]) -> Dict[int, CohortStats]:
    """과목별 통계 (성적이 있는 학생만 반영, 아무도 없는 과목은 제외)"""
    by_subject: Dict[int, List[float]] = defaultdict(list)
    for result in results:
        for subject_id, subject in result.subjects.items():
            by_subject[subject_id].append(subject.average)
    return {subject_id: cohort_stats(values) for subject_id, values in by_subject.items()}


# ==========================================================
# [5] 학급 전체 집계 파이프라인
# ==========================================================
def aggregate_class(
    student_ids: Sequence[int],
    subjects: Sequence[Tuple[int, float]],
    grades: Mapping[Tuple[int, int], Sequence[GradeEntry]],
    config: GradingConfig,
) -> ClassAggregate:
    """
    메모리 상에서 학급 전체 성적을 집계
    - student_ids: 재학생 ID 목록 (성적이 없어도 모두 포함)
    - subjects: (과목 ID, 계수) 목록
    - grades: {(학생 ID, 과목 ID): [GradeEntry, ...]}
    """
    if not student_ids:
        raise ValueError("student_ids must not be empty")

    results: List[StudentResult] = []
    for student_id in student_ids:
        result = StudentResult(student_id=student_id, overall_average=0.0)
        for subject_id, coefficient in subjects:
            average = subject_average(grades.get((student_id, subject_id), ()), config)
            if average is not None:
                result.subjects[subject_id] = SubjectResult(
                    subject_id=subject_id, average=average, coefficient=coefficient
                )
        result.overall_average = overall_average(
            (s.average, s.coefficient) for s in result.subjects.values()
        )
        results.append(result)

    # 과목 내 석차
    by_student = {r.student_id: r for r in results}
    for subject_id, _ in subjects:
        scores = [
            (r.student_id, r.subjects[subject_id].average)
            for r in results
            if subject_id in r.subjects
        ]
        for student_id, rank in competition_ranks(scores).items():
            by_student[student_id].subjects[subject_id].rank_in_subject = rank

    ranked = rank_students(results)
    return ClassAggregate(
        students=ranked,
        overall_stats=cohort_stats([r.overall_average for r in ranked]),
        subject_stats=subject_cohort_stats(ranked),
    )
