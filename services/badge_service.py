"""
services/badge_service.py

배지 자동 수여 규칙 엔진 + 배지 조회/수동 수여
- 성적표 생성 이벤트(ReportCardGenerated)를 받아 criteria 가 있는 배지를 평가합니다.
  · min_average: overall_average >= min_average 이면 충족
  · rank:        rank == criteria.rank 이면 충족
  · 여러 키가 있으면 하나라도 충족하면 수여 (OR)
- (student_id, badge_id) 는 UNIQUE 이며, 이미 있으면 INSERT 는 아무 일도 하지 않습니다.
- 배지 하나의 처리 오류는 로그만 남기고 다음 배지로 넘어갑니다 (성적표 생성 결과에 영향 없음).
"""

import logging
from typing import Any, Callable, Iterable, List, Mapping, Optional

from sqlalchemy import insert
from sqlalchemy.dialects.mysql import insert as mysql_insert
from sqlalchemy.dialects.postgresql import insert as pg_insert
from sqlalchemy.dialects.sqlite import insert as sqlite_insert
from sqlalchemy.exc import SQLAlchemyError
from sqlalchemy.orm import Session

from database.db import SessionLocal
from models.badges import Badge as BadgeModel
from models.badges import StudentBadge as StudentBadgeModel
from models.report_cards import ReportCard as ReportCardModel
from services.report_card_service import ReportCardGenerated

logger = logging.getLogger(__name__)


# ==========================================================
# [1] 조건 평가 (순수 함수)
# ==========================================================
def is_eligible(criteria: Optional[Mapping[str, Any]], overall_average: Optional[float], rank: Optional[int]) -> bool:
    """배지 criteria 를 성적표 결과에 대해 평가 (알 수 없는 키는 무시, 키 간 OR)"""
    if not criteria:
        return False
    if not isinstance(criteria, Mapping):
        logger.warning(f"배지 criteria 형식 오류 (객체 아님): {criteria!r}")
        return False

    min_average = criteria.get("min_average")
    if min_average is not None and overall_average is not None:
        if float(overall_average) >= float(min_average):
            return True

    target_rank = criteria.get("rank")
    if target_rank is not None and rank is not None:
        # 소수 석차(1.5 등)는 어떤 석차와도 일치하지 않음
        if float(rank) == float(target_rank):
            return True

    return False


# ==========================================================
# [2] 배지 저장소
# ==========================================================
def list_badges_with_criteria(db: Session) -> List[BadgeModel]:
    return (
        db.query(BadgeModel)
        .filter(BadgeModel.criteria.isnot(None))
        .order_by(BadgeModel.id)
        .all()
    )


def has_award(db: Session, student_id: int, badge_id: int) -> bool:
    return (
        db.query(StudentBadgeModel.id)
        .filter(StudentBadgeModel.student_id == student_id, StudentBadgeModel.badge_id == badge_id)
        .first()
        is not None
    )


def insert_award(db: Session, student_id: int, badge_id: int, awarded_by: Optional[int] = None) -> bool:
    """
    수여 기록 INSERT (충돌 시 no-op)
    - 동시에 같은 (학생, 배지) 수여가 들어와도 UNIQUE 제약으로 한 건만 남음
    - 실제로 삽입되었으면 True
    """
    values = {"student_id": student_id, "badge_id": badge_id, "awarded_by": awarded_by}
    dialect = db.get_bind().dialect.name

    if dialect == "postgresql":
        stmt = pg_insert(StudentBadgeModel).values(**values).on_conflict_do_nothing(
            index_elements=["student_id", "badge_id"]
        )
    elif dialect == "sqlite":
        stmt = sqlite_insert(StudentBadgeModel).values(**values).on_conflict_do_nothing(
            index_elements=["student_id", "badge_id"]
        )
    elif dialect == "mysql":
        stmt = mysql_insert(StudentBadgeModel).values(**values).prefix_with("IGNORE")
    else:
        stmt = insert(StudentBadgeModel).values(**values)

    result = db.execute(stmt)
    return result.rowcount == 1


# ==========================================================
# [3] 자동 수여 엔진
# ==========================================================
def award_for_report_card(
    db: Session,
    student_id: int,
    overall_average: Optional[float],
    rank: Optional[int],
    badges: Optional[Iterable[BadgeModel]] = None,
) -> List[int]:
    """
    성적표 한 건에 대해 배지 평가 및 수여
    - 반환: 이번에 새로 수여된 badge_id 목록
    """
    if badges is None:
        badges = list_badges_with_criteria(db)

    awarded: List[int] = []
    for badge in badges:
        try:
            if not is_eligible(badge.criteria, overall_average, rank):
                continue
            # 배지 단위 SAVEPOINT: 실패한 배지만 되돌리고 같은 트랜잭션의 다른 수여는 유지
            with db.begin_nested():
                if has_award(db, student_id, badge.id):
                    continue
                inserted = insert_award(db, student_id, badge.id)
            if inserted:
                awarded.append(badge.id)
                logger.info(f"배지 자동 수여: student={student_id}, badge={badge.id}({badge.name})")
        except Exception:
            logger.exception(f"배지 자동 수여 실패 (건너뜀): student={student_id}, badge={badge.id}")
    return awarded


def evaluate_report_card(db: Session, report_card_id: int) -> List[int]:
    """저장된 성적표 ID 로 배지 평가 (성적표가 없으면 빈 목록)"""
    card = db.get(ReportCardModel, report_card_id)
    if card is None:
        logger.warning(f"배지 평가 대상 성적표 없음: report_card_id={report_card_id}")
        return []
    awarded = award_for_report_card(db, card.student_id, card.overall_average, card.rank)
    db.commit()
    return awarded


def handle_report_card_events(
    events: Iterable[ReportCardGenerated],
    session_factory: Callable[[], Session] = SessionLocal,
) -> int:
    """
    성적표 생성 이벤트 소비자 (백그라운드 작업으로 실행)
    - 별도 세션을 열어 이벤트마다 배지를 평가하고 커밋
    - 반환: 새로 수여된 배지 수
    """
    db = session_factory()
    total = 0
    try:
        badges = list_badges_with_criteria(db)
        if not badges:
            return 0
        for event in events:
            awarded = award_for_report_card(db, event.student_id, event.overall_average, event.rank, badges)
            try:
                db.commit()
            except SQLAlchemyError:
                db.rollback()
                logger.exception(f"배지 수여 커밋 실패 (건너뜀): report_card={event.report_card_id}")
                continue
            total += len(awarded)
    finally:
        db.close()

    logger.info(f"배지 자동 수여 처리 완료: awarded={total}")
    return total


# ==========================================================
# [4] 배지 관리 (목록/생성/수동 수여/학생 배지)
# ==========================================================
def list_badges(db: Session) -> List[BadgeModel]:
    return db.query(BadgeModel).order_by(BadgeModel.created_at.desc(), BadgeModel.id.desc()).all()


def create_badge(db: Session, **fields) -> BadgeModel:
    badge = BadgeModel(**fields)
    db.add(badge)
    db.commit()
    db.refresh(badge)
    return badge


def award_manually(db: Session, student_id: int, badge_id: int, awarded_by: Optional[int] = None) -> Optional[StudentBadgeModel]:
    """수동 수여 (이미 수여된 경우 None)"""
    if not insert_award(db, student_id, badge_id, awarded_by):
        db.rollback()
        return None
    db.commit()
    return (
        db.query(StudentBadgeModel)
        .filter(StudentBadgeModel.student_id == student_id, StudentBadgeModel.badge_id == badge_id)
        .one()
    )


def list_student_badges(db: Session, student_id: int) -> List[dict]:
    rows = (
        db.query(StudentBadgeModel, BadgeModel)
        .join(BadgeModel, BadgeModel.id == StudentBadgeModel.badge_id)
        .filter(StudentBadgeModel.student_id == student_id)
        .order_by(StudentBadgeModel.awarded_at.desc(), StudentBadgeModel.id.desc())
        .all()
    )
    return [
        {
            "id": sb.id,
            "student_id": sb.student_id,
            "badge_id": sb.badge_id,
            "awarded_at": sb.awarded_at,
            "awarded_by": sb.awarded_by,
            "name": b.name,
            "description": b.description,
            "icon_url": b.icon_url,
            "badge_type": b.badge_type,
        }
        for sb, b in rows
    ]
