"""
services/report_card_service.py

학급 성적표 생성 / 조회 서비스
- generate_class_report_cards: 학급 + 평가 기간 단위로 성적표 전체를 교체 생성 (단일 트랜잭션)
- get_class_report_cards / get_report_card_detail: 조회 전용
- update_report_card_status: draft ↔ published → archived 상태 변경

생성 흐름
  1) 입력 검증 (학급/기간 존재, 같은 학교 소속, 재학생 존재)
  2) 원천 데이터 일괄 조회 (재학생, 과목 계수, 채점 만점, 성적)
  3) 메모리 집계 (과목 평균 → 전체 평균 → 석차 → 학급 통계)
  4) 기존 성적표 삭제 + 새 성적표 삽입 후 커밋
  5) 생성된 성적표마다 ReportCardGenerated 이벤트 반환 (배지 엔진이 소비)
어느 단계에서든 오류가 나면 롤백되어 기존 성적표는 그대로 남습니다.
"""

import logging
import threading
import time
from contextlib import contextmanager
from dataclasses import dataclass, field
from typing import List, Optional, Set, Tuple

from sqlalchemy import text
from sqlalchemy.exc import SQLAlchemyError
from sqlalchemy.orm import Session

from config.settings import settings
from models.classes import Class as ClassModel
from models.report_cards import ReportCard as ReportCardModel
from models.report_cards import ReportCardSubject as ReportCardSubjectModel
from models.report_periods import ReportPeriod as ReportPeriodModel
from models.students import Student as StudentModel
from models.subjects import Subject as SubjectModel
from services.grading.calculators import ClassAggregate, GradingConfig, aggregate_class, round2
from services.grading.errors import (
    GenerationInProgressError,
    GenerationTimeoutError,
    InvalidGenerationRequest,
    InvalidStatusTransition,
    ReportCardError,
    ReportCardNotFound,
    ReportCardStorageError,
)
from services.grading.grade_store import GradeStore

logger = logging.getLogger(__name__)


# ==========================================================
# 결과 / 이벤트 타입
# ==========================================================
@dataclass(frozen=True)
class ReportCardGenerated:
    """성적표 1건 생성 이벤트 (배지 자동 수여 엔진 입력)"""
    report_card_id: int
    student_id: int
    class_id: int
    report_period_id: int
    overall_average: float
    rank: int


@dataclass
class GenerationResult:
    generated_count: int
    events: List[ReportCardGenerated] = field(default_factory=list)


# ==========================================================
# 동시 실행 제어 / 시간 제한
# ==========================================================
_locks_guard = threading.Lock()
_active_generations: Set[Tuple[int, int]] = set()


@contextmanager
def generation_lock(class_id: int, report_period_id: int):
    """같은 (학급, 기간) 생성 요청은 한 번에 하나만 실행 (대기하지 않고 409)"""
    key = (class_id, report_period_id)
    with _locks_guard:
        if key in _active_generations:
            raise GenerationInProgressError(
                f"학급 {class_id} / 기간 {report_period_id} 성적표가 이미 생성 중입니다"
            )
        _active_generations.add(key)
    try:
        yield
    finally:
        # 끝난 키는 바로 제거 (실행 중인 키만 남음)
        with _locks_guard:
            _active_generations.discard(key)


class Deadline:
    def __init__(self, seconds: float):
        self.seconds = seconds
        self.started = time.monotonic()

    def elapsed(self) -> float:
        return time.monotonic() - self.started

    def check(self, stage: str) -> None:
        if self.elapsed() >= self.seconds:
            raise GenerationTimeoutError(
                f"성적표 생성 제한 시간({self.seconds}s) 초과: stage={stage}"
            )


def _acquire_db_lock(db: Session, class_id: int, report_period_id: int) -> Optional[str]:
    """
    DB 레벨 잠금 (다중 프로세스 대비)
    - PostgreSQL: 트랜잭션 단위 advisory lock (커밋/롤백 시 자동 해제)
    - MySQL: GET_LOCK (호출 측에서 RELEASE_LOCK 필요 → 잠금 이름 반환)
    - 그 외(sqlite 등): 프로세스 내 잠금 + UNIQUE 제약에 맡김
    """
    dialect = db.get_bind().dialect.name
    if dialect == "postgresql":
        acquired = db.execute(
            text("SELECT pg_try_advisory_xact_lock(:class_id, :period_id)"),
            {"class_id": class_id, "period_id": report_period_id},
        ).scalar()
        if not acquired:
            raise GenerationInProgressError("다른 서버에서 같은 성적표를 생성 중입니다")
        return None
    if dialect == "mysql":
        name = f"report_cards:{class_id}:{report_period_id}"
        acquired = db.execute(text("SELECT GET_LOCK(:name, 0)"), {"name": name}).scalar()
        if acquired != 1:
            raise GenerationInProgressError("다른 서버에서 같은 성적표를 생성 중입니다")
        return name
    return None


def _release_db_lock(db: Session, name: Optional[str]) -> None:
    if name is None:
        return
    try:
        db.execute(text("SELECT RELEASE_LOCK(:name)"), {"name": name})
    except SQLAlchemyError:
        logger.exception(f"DB 잠금 해제 실패: {name}")


# ==========================================================
# 입력 검증
# ==========================================================
def _load_class_and_period(db: Session, class_id: int, report_period_id: int):
    class_obj = db.get(ClassModel, class_id)
    if class_obj is None:
        raise InvalidGenerationRequest(f"학급을 찾을 수 없습니다: {class_id}", status_code=404)

    period = db.get(ReportPeriodModel, report_period_id)
    if period is None:
        raise InvalidGenerationRequest(f"평가 기간을 찾을 수 없습니다: {report_period_id}", status_code=404)

    if period.school_id != class_obj.school_id:
        raise InvalidGenerationRequest("학급과 평가 기간의 소속 학교가 다릅니다")

    return class_obj, period


# ==========================================================
# 성적표 교체 저장
# ==========================================================
def _replace_report_cards(
    db: Session,
    class_id: int,
    report_period_id: int,
    aggregate: ClassAggregate,
    deadline: Deadline,
) -> List[ReportCardModel]:
    # (a) 기존 성적표 삭제 (과목 상세는 FK CASCADE 로 함께 삭제)
    deleted = (
        db.query(ReportCardModel)
        .filter(
            ReportCardModel.class_id == class_id,
            ReportCardModel.report_period_id == report_period_id,
        )
        .delete(synchronize_session="fetch")
    )
    logger.info(f"기존 성적표 삭제: class={class_id}, period={report_period_id}, count={deleted}")

    overall = aggregate.overall_stats
    total_students = len(aggregate.students)
    cards: List[ReportCardModel] = []

    # (b) 학생별 성적표 + (c) 과목별 상세
    for student in aggregate.students:
        deadline.check("insert")
        card = ReportCardModel(
            student_id=student.student_id,
            class_id=class_id,
            report_period_id=report_period_id,
            overall_average=round2(student.overall_average),
            class_average=round2(overall.mean),
            min_average=round2(overall.min),
            max_average=round2(overall.max),
            rank=student.rank,
            total_students=total_students,
            status="draft",
        )
        for subject_id in sorted(student.subjects):
            subject = student.subjects[subject_id]
            stats = aggregate.subject_stats[subject_id]
            card.subjects.append(
                ReportCardSubjectModel(
                    subject_id=subject_id,
                    subject_average=round2(subject.average),
                    class_subject_average=round2(stats.mean),
                    min_subject_average=round2(stats.min),
                    max_subject_average=round2(stats.max),
                    coefficient=subject.coefficient,
                    rank_in_subject=subject.rank_in_subject,
                )
            )
        db.add(card)
        cards.append(card)

    db.flush()
    return cards


# ==========================================================
# [생성] 학급 성적표 생성
# ==========================================================
def generate_class_report_cards(
    db: Session,
    class_id: int,
    report_period_id: int,
    timeout_sec: Optional[float] = None,
) -> GenerationResult:
    """
    학급 + 평가 기간의 성적표를 새로 계산해서 전체 교체
    - 성공: 커밋 후 생성 건수와 이벤트 반환
    - 실패: 롤백 (기존 성적표 유지) 후 ReportCardError 계열 예외
    """
    if timeout_sec is None:
        timeout_sec = settings.REPORT_CARD_GENERATION_TIMEOUT_SEC

    with generation_lock(class_id, report_period_id):
        deadline = Deadline(timeout_sec)
        db_lock_name = None
        try:
            class_obj, period = _load_class_and_period(db, class_id, report_period_id)
            db_lock_name = _acquire_db_lock(db, class_id, report_period_id)

            store = GradeStore(db)
            student_ids = store.list_active_students(class_id)
            if not student_ids:
                raise InvalidGenerationRequest(f"학급 {class_id} 에 재학 중인 학생이 없습니다", status_code=404)

            subjects = store.list_subjects_with_coefficients(class_id)
            # 만점은 생성 1회당 한 번만 조회해서 계산기로 전달
            config = GradingConfig(scale_max=store.get_grading_scale_ceiling(class_obj.school_id))
            grades = store.list_class_grades(student_ids, report_period_id)
            deadline.check("load")

            logger.info(
                f"성적표 생성 시작: class={class_id}, period={report_period_id}, "
                f"students={len(student_ids)}, subjects={len(subjects)}, scale=/{config.scale_max:g}"
            )
            aggregate = aggregate_class(student_ids, subjects, grades, config)
            deadline.check("aggregate")

            cards = _replace_report_cards(db, class_id, report_period_id, aggregate, deadline)
            # flush 로 ID 가 확정된 상태에서 이벤트 생성
            events = [
                ReportCardGenerated(
                    report_card_id=card.id,
                    student_id=card.student_id,
                    class_id=class_id,
                    report_period_id=report_period_id,
                    overall_average=card.overall_average,
                    rank=card.rank,
                )
                for card in cards
            ]
            deadline.check("commit")
            # GET_LOCK 은 커넥션 단위 → 커밋으로 커넥션이 풀에 반납되기 전에 해제
            _release_db_lock(db, db_lock_name)
            db_lock_name = None
            db.commit()
        except ReportCardError as e:
            _release_db_lock(db, db_lock_name)
            db.rollback()
            logger.warning(f"성적표 생성 실패 (롤백): class={class_id}, period={report_period_id}, reason={e.message}")
            raise
        except SQLAlchemyError as e:
            _release_db_lock(db, db_lock_name)
            db.rollback()
            logger.exception(f"성적표 저장 중 DB 오류 (롤백): class={class_id}, period={report_period_id}")
            raise ReportCardStorageError("성적표 저장 중 오류가 발생했습니다") from e
        except Exception:
            _release_db_lock(db, db_lock_name)
            db.rollback()
            raise

    logger.info(
        f"성적표 생성 완료: class={class_id}, period={report_period_id}, "
        f"count={len(cards)}, elapsed={deadline.elapsed():.3f}s"
    )
    return GenerationResult(generated_count=len(cards), events=events)


# ==========================================================
# [조회] 학급 성적표 목록 / 상세
# ==========================================================
def _card_to_dict(card: ReportCardModel) -> dict:
    return {
        "id": card.id,
        "student_id": card.student_id,
        "class_id": card.class_id,
        "report_period_id": card.report_period_id,
        "overall_average": card.overall_average,
        "class_average": card.class_average,
        "min_average": card.min_average,
        "max_average": card.max_average,
        "rank": card.rank,
        "total_students": card.total_students,
        "appreciation": card.appreciation,
        "status": card.status,
        "generated_at": card.generated_at,
    }


def get_class_report_cards(db: Session, class_id: int, report_period_id: int) -> List[dict]:
    rows = (
        db.query(ReportCardModel, StudentModel.student_name, StudentModel.email)
        .join(StudentModel, StudentModel.id == ReportCardModel.student_id)
        .filter(
            ReportCardModel.class_id == class_id,
            ReportCardModel.report_period_id == report_period_id,
        )
        .order_by(ReportCardModel.rank.asc(), StudentModel.student_name.asc())
        .all()
    )
    result = []
    for card, student_name, student_email in rows:
        item = _card_to_dict(card)
        item["student_name"] = student_name
        item["student_email"] = student_email
        result.append(item)
    return result


def get_report_card_detail(db: Session, report_card_id: int) -> dict:
    row = (
        db.query(
            ReportCardModel,
            StudentModel.student_name,
            StudentModel.email,
            ClassModel.name,
            ReportPeriodModel.name,
            ReportPeriodModel.school_year,
        )
        .join(StudentModel, StudentModel.id == ReportCardModel.student_id)
        .join(ClassModel, ClassModel.id == ReportCardModel.class_id)
        .join(ReportPeriodModel, ReportPeriodModel.id == ReportCardModel.report_period_id)
        .filter(ReportCardModel.id == report_card_id)
        .first()
    )
    if row is None:
        raise ReportCardNotFound(f"성적표를 찾을 수 없습니다: {report_card_id}")

    card, student_name, student_email, class_name, period_name, school_year = row
    subjects = (
        db.query(ReportCardSubjectModel, SubjectModel.name, SubjectModel.code)
        .join(SubjectModel, SubjectModel.id == ReportCardSubjectModel.subject_id)
        .filter(ReportCardSubjectModel.report_card_id == report_card_id)
        .order_by(SubjectModel.name.asc())
        .all()
    )

    detail = _card_to_dict(card)
    detail.update(
        student_name=student_name,
        student_email=student_email,
        class_name=class_name,
        period_name=period_name,
        school_year=school_year,
        subjects=[
            {
                "id": s.id,
                "subject_id": s.subject_id,
                "subject_name": name,
                "subject_code": code,
                "subject_average": s.subject_average,
                "class_subject_average": s.class_subject_average,
                "min_subject_average": s.min_subject_average,
                "max_subject_average": s.max_subject_average,
                "coefficient": s.coefficient,
                "rank_in_subject": s.rank_in_subject,
                "appreciation": s.appreciation,
            }
            for s, name, code in subjects
        ],
    )
    return detail


# ==========================================================
# [수정] 성적표 상태 변경
# ==========================================================
ALLOWED_TRANSITIONS = {
    "draft": {"published"},
    "published": {"draft", "archived"},
    "archived": set(),
}


def update_report_card_status(
    db: Session, report_card_id: int, status: str, appreciation: Optional[str] = None
) -> ReportCardModel:
    card = db.get(ReportCardModel, report_card_id)
    if card is None:
        raise ReportCardNotFound(f"성적표를 찾을 수 없습니다: {report_card_id}")

    if status != card.status and status not in ALLOWED_TRANSITIONS.get(card.status, set()):
        raise InvalidStatusTransition(f"상태를 변경할 수 없습니다: {card.status} → {status}")

    card.status = status
    if appreciation is not None:
        card.appreciation = appreciation
    db.commit()
    db.refresh(card)
    return card
