import pytest
from sqlalchemy.exc import IntegrityError

from models.report_cards import ReportCard as ReportCardModel
from models.report_cards import ReportCardSubject as ReportCardSubjectModel
from models.schools import GradingScale as GradingScaleModel
from models.schools import SchoolSetting as SchoolSettingModel
from services import report_card_service
from services.grading.errors import (
    GenerationInProgressError,
    GenerationTimeoutError,
    GradeInvariantError,
    InvalidGenerationRequest,
    InvalidStatusTransition,
    ReportCardNotFound,
    ReportCardStorageError,
)
from services.grading.grade_store import GradeStore


def _snapshot(db, class_id, period_id):
    """id / generated_at 을 제외한 성적표 + 과목 상세 내용"""
    cards = (
        db.query(ReportCardModel)
        .filter(ReportCardModel.class_id == class_id, ReportCardModel.report_period_id == period_id)
        .order_by(ReportCardModel.student_id)
        .all()
    )
    result = []
    for c in cards:
        subjects = sorted(
            (s.subject_id, s.subject_average, s.class_subject_average, s.min_subject_average,
             s.max_subject_average, s.coefficient, s.rank_in_subject)
            for s in c.subjects
        )
        result.append(
            (c.student_id, c.overall_average, c.class_average, c.min_average, c.max_average,
             c.rank, c.total_students, c.status, tuple(subjects))
        )
    return result


# ==========================================================
# 생성 시나리오
# ==========================================================
def test_generate_three_student_scenario(db, classroom):
    result = report_card_service.generate_class_report_cards(db, classroom.klass.id, classroom.period.id)
    assert result.generated_count == 3

    cards = report_card_service.get_class_report_cards(db, classroom.klass.id, classroom.period.id)
    assert [(c["student_name"], c["overall_average"], c["rank"]) for c in cards] == [
        ("Alice", 18.0, 1),
        ("Chloé", 14.0, 2),
        ("Bruno", 10.0, 3),
    ]
    for card in cards:
        assert (card["min_average"], card["max_average"], card["class_average"]) == (10.0, 18.0, 14.0)
        assert card["total_students"] == 3
        assert card["status"] == "draft"

    detail = report_card_service.get_report_card_detail(db, cards[0]["id"])
    assert detail["class_name"] == "6e A"
    assert detail["period_name"] == "Trimestre 1"
    assert len(detail["subjects"]) == 1
    subject = detail["subjects"][0]
    assert subject["subject_code"] == "MATH"
    assert subject["subject_average"] == 18.0
    assert (subject["min_subject_average"], subject["max_subject_average"], subject["class_subject_average"]) == (10.0, 18.0, 14.0)
    assert subject["coefficient"] == 1.0


def test_generate_returns_one_event_per_card(db, classroom):
    result = report_card_service.generate_class_report_cards(db, classroom.klass.id, classroom.period.id)

    assert len(result.events) == 3
    top = next(e for e in result.events if e.rank == 1)
    assert top.student_id == classroom.students[0].id
    assert top.overall_average == 18.0
    assert db.get(ReportCardModel, top.report_card_id) is not None


def test_regeneration_is_idempotent(db, classroom):
    report_card_service.generate_class_report_cards(db, classroom.klass.id, classroom.period.id)
    first = _snapshot(db, classroom.klass.id, classroom.period.id)

    report_card_service.generate_class_report_cards(db, classroom.klass.id, classroom.period.id)
    second = _snapshot(db, classroom.klass.id, classroom.period.id)

    assert first == second
    assert db.query(ReportCardModel).count() == 3
    assert db.query(ReportCardSubjectModel).count() == 3


def test_regeneration_reflects_latest_grades(db, seed, classroom):
    report_card_service.generate_class_report_cards(db, classroom.klass.id, classroom.period.id)
    seed.grade(classroom.students[1], classroom.math, classroom.period, 20)   # Bruno: 10, 20 → 15

    report_card_service.generate_class_report_cards(db, classroom.klass.id, classroom.period.id)
    cards = report_card_service.get_class_report_cards(db, classroom.klass.id, classroom.period.id)
    assert [(c["student_name"], c["overall_average"], c["rank"]) for c in cards] == [
        ("Alice", 18.0, 1),
        ("Bruno", 15.0, 2),
        ("Chloé", 14.0, 3),
    ]


def test_coefficient_only_counts_graded_subjects(db, seed, classroom):
    physics = seed.subject("Physique", code="PHY")
    history = seed.subject("Histoire", code="HIS")
    seed.coefficient(physics, classroom.klass, 2.0)
    seed.coefficient(history, classroom.klass, 3.0)
    lone = seed.student(classroom.klass, "Damien")
    seed.grade(lone, physics, classroom.period, 15)

    report_card_service.generate_class_report_cards(db, classroom.klass.id, classroom.period.id)
    card = db.query(ReportCardModel).filter(ReportCardModel.student_id == lone.id).one()

    assert card.overall_average == 15.0
    assert [(s.subject_id, s.coefficient) for s in card.subjects] == [(physics.id, 2.0)]


def test_students_without_grades_still_get_report_cards(db, seed, classroom):
    empty = seed.student(classroom.klass, "Émile")
    seed.student(classroom.klass, "Inactif", is_active=False)

    result = report_card_service.generate_class_report_cards(db, classroom.klass.id, classroom.period.id)
    assert result.generated_count == 4

    card = db.query(ReportCardModel).filter(ReportCardModel.student_id == empty.id).one()
    assert card.overall_average == 0.0
    assert card.rank == 4
    assert card.total_students == 4
    assert card.subjects == []
    # 성적 없는 학생도 학급 전체 통계에 포함
    assert card.min_average == 0.0


def test_ties_share_rank(db, seed, classroom):
    twin = seed.student(classroom.klass, "Zoé")
    seed.grade(twin, classroom.math, classroom.period, 18)

    report_card_service.generate_class_report_cards(db, classroom.klass.id, classroom.period.id)
    cards = report_card_service.get_class_report_cards(db, classroom.klass.id, classroom.period.id)

    assert [(c["student_name"], c["rank"]) for c in cards] == [
        ("Alice", 1),
        ("Zoé", 1),
        ("Chloé", 3),
        ("Bruno", 4),
    ]


def test_grading_scale_ceiling_from_school_setting(db, seed, classroom):
    scale = GradingScaleModel(name="Sur 10", max_value=10.0)
    db.add(scale)
    db.commit()
    db.add(SchoolSettingModel(school_id=classroom.school.id, setting_key="grading_scale_id", setting_value=str(scale.id)))
    db.commit()

    assert GradeStore(db).get_grading_scale_ceiling(classroom.school.id) == 10.0

    report_card_service.generate_class_report_cards(db, classroom.klass.id, classroom.period.id)
    cards = report_card_service.get_class_report_cards(db, classroom.klass.id, classroom.period.id)
    assert [c["overall_average"] for c in cards] == [9.0, 7.0, 5.0]


def test_grading_scale_ceiling_defaults_to_twenty(db, classroom):
    assert GradeStore(db).get_grading_scale_ceiling(classroom.school.id) == 20.0


def test_inactive_subjects_are_ignored(db, seed, classroom):
    old = seed.subject("Latin", is_active=False)
    seed.grade(classroom.students[1], old, classroom.period, 20)

    report_card_service.generate_class_report_cards(db, classroom.klass.id, classroom.period.id)
    card = db.query(ReportCardModel).filter(ReportCardModel.student_id == classroom.students[1].id).one()
    assert card.overall_average == 10.0
    assert [s.subject_id for s in card.subjects] == [classroom.math.id]


def test_other_periods_are_left_untouched(db, seed, classroom):
    period_2 = seed.period(classroom.school, name="Trimestre 2")
    seed.grade(classroom.students[0], classroom.math, period_2, 5)

    report_card_service.generate_class_report_cards(db, classroom.klass.id, classroom.period.id)
    report_card_service.generate_class_report_cards(db, classroom.klass.id, period_2.id)
    report_card_service.generate_class_report_cards(db, classroom.klass.id, classroom.period.id)

    assert db.query(ReportCardModel).filter(ReportCardModel.report_period_id == period_2.id).count() == 3
    assert db.query(ReportCardModel).filter(ReportCardModel.report_period_id == classroom.period.id).count() == 3


# ==========================================================
# 오류 처리 / 롤백
# ==========================================================
def test_unknown_class_or_period(db, classroom):
    with pytest.raises(InvalidGenerationRequest) as exc:
        report_card_service.generate_class_report_cards(db, 9999, classroom.period.id)
    assert exc.value.status_code == 404

    with pytest.raises(InvalidGenerationRequest):
        report_card_service.generate_class_report_cards(db, classroom.klass.id, 9999)


def test_period_from_another_school_is_rejected(db, seed, classroom):
    other_period = seed.period(seed.school("Autre école"))
    with pytest.raises(InvalidGenerationRequest) as exc:
        report_card_service.generate_class_report_cards(db, classroom.klass.id, other_period.id)
    assert exc.value.status_code == 400


def test_empty_roster_is_rejected(db, seed, classroom):
    empty_class = seed.klass(classroom.school, name="6e B")
    with pytest.raises(InvalidGenerationRequest) as exc:
        report_card_service.generate_class_report_cards(db, empty_class.id, classroom.period.id)
    assert exc.value.status_code == 404
    assert db.query(ReportCardModel).count() == 0


def test_corrupt_grade_aborts_and_keeps_previous_cards(db, seed, classroom):
    report_card_service.generate_class_report_cards(db, classroom.klass.id, classroom.period.id)
    before = _snapshot(db, classroom.klass.id, classroom.period.id)

    seed.grade(classroom.students[2], classroom.math, classroom.period, 25, max_value=20)

    with pytest.raises(GradeInvariantError):
        report_card_service.generate_class_report_cards(db, classroom.klass.id, classroom.period.id)

    assert _snapshot(db, classroom.klass.id, classroom.period.id) == before


def test_timeout_during_insert_rolls_back(db, classroom, monkeypatch):
    report_card_service.generate_class_report_cards(db, classroom.klass.id, classroom.period.id)
    before = _snapshot(db, classroom.klass.id, classroom.period.id)
    before_ids = sorted(c.id for c in db.query(ReportCardModel).all())

    original_check = report_card_service.Deadline.check

    def expire_on_insert(self, stage):
        if stage == "insert":
            raise GenerationTimeoutError("timeout")
        original_check(self, stage)

    monkeypatch.setattr(report_card_service.Deadline, "check", expire_on_insert)

    with pytest.raises(GenerationTimeoutError):
        report_card_service.generate_class_report_cards(db, classroom.klass.id, classroom.period.id)

    assert _snapshot(db, classroom.klass.id, classroom.period.id) == before
    assert sorted(c.id for c in db.query(ReportCardModel).all()) == before_ids


def test_zero_timeout_fails_without_writing(db, classroom):
    with pytest.raises(GenerationTimeoutError):
        report_card_service.generate_class_report_cards(db, classroom.klass.id, classroom.period.id, timeout_sec=0)
    assert db.query(ReportCardModel).count() == 0


def test_concurrent_generation_for_same_class_period_is_refused(db, seed, classroom):
    with report_card_service.generation_lock(classroom.klass.id, classroom.period.id):
        with pytest.raises(GenerationInProgressError):
            report_card_service.generate_class_report_cards(db, classroom.klass.id, classroom.period.id)

        # 다른 기간은 독립적으로 실행 가능
        period_2 = seed.period(classroom.school, name="Trimestre 2")
        result = report_card_service.generate_class_report_cards(db, classroom.klass.id, period_2.id)
        assert result.generated_count == 3

    # 잠금 해제 후에는 정상 실행
    assert report_card_service.generate_class_report_cards(db, classroom.klass.id, classroom.period.id).generated_count == 3
    assert report_card_service._active_generations == set()


def test_storage_error_rolls_back_and_keeps_previous_cards(db, classroom, monkeypatch):
    report_card_service.generate_class_report_cards(db, classroom.klass.id, classroom.period.id)
    before = _snapshot(db, classroom.klass.id, classroom.period.id)
    before_ids = sorted(c.id for c in db.query(ReportCardModel).all())

    real_replace = report_card_service._replace_report_cards

    def fail_after_write(*args):
        real_replace(*args)
        raise IntegrityError("INSERT INTO report_cards", {}, Exception("duplicate key"))

    monkeypatch.setattr(report_card_service, "_replace_report_cards", fail_after_write)

    with pytest.raises(ReportCardStorageError) as exc:
        report_card_service.generate_class_report_cards(db, classroom.klass.id, classroom.period.id)
    assert exc.value.status_code == 500

    assert _snapshot(db, classroom.klass.id, classroom.period.id) == before
    assert sorted(c.id for c in db.query(ReportCardModel).all()) == before_ids


def _spy_db_lock(monkeypatch):
    """DB 잠금 획득/해제 시점의 커넥션과 트랜잭션 상태 기록"""
    calls = []

    def record(db, step):
        calls.append((step, db.in_transaction(), id(db.connection().connection.dbapi_connection)))

    def acquire(db, class_id, report_period_id):
        record(db, "acquire")
        return f"report_cards:{class_id}:{report_period_id}"

    def release(db, name):
        if name is not None:
            record(db, "release")

    monkeypatch.setattr(report_card_service, "_acquire_db_lock", acquire)
    monkeypatch.setattr(report_card_service, "_release_db_lock", release)
    return calls


def test_db_lock_is_released_on_the_locking_connection(db, classroom, monkeypatch):
    calls = _spy_db_lock(monkeypatch)

    report_card_service.generate_class_report_cards(db, classroom.klass.id, classroom.period.id)

    (step_a, in_tx_a, conn_a), (step_r, in_tx_r, conn_r) = calls
    assert (step_a, step_r) == ("acquire", "release")
    # 커밋 전(같은 트랜잭션, 같은 커넥션)에 해제
    assert in_tx_a and in_tx_r
    assert conn_r == conn_a


def test_db_lock_is_released_before_rollback(db, classroom, monkeypatch):
    calls = _spy_db_lock(monkeypatch)

    with pytest.raises(GenerationTimeoutError):
        report_card_service.generate_class_report_cards(db, classroom.klass.id, classroom.period.id, timeout_sec=0)

    assert [c[0] for c in calls] == ["acquire", "release"]
    assert calls[1][1] is True
    assert calls[1][2] == calls[0][2]


# ==========================================================
# 조회 / 상태 변경
# ==========================================================
def test_detail_of_unknown_card(db):
    with pytest.raises(ReportCardNotFound):
        report_card_service.get_report_card_detail(db, 12345)


def test_status_transitions(db, classroom):
    report_card_service.generate_class_report_cards(db, classroom.klass.id, classroom.period.id)
    card_id = db.query(ReportCardModel.id).first()[0]

    card = report_card_service.update_report_card_status(db, card_id, "published", appreciation="Très bon trimestre")
    assert (card.status, card.appreciation) == ("published", "Très bon trimestre")

    card = report_card_service.update_report_card_status(db, card_id, "archived")
    assert card.status == "archived"

    with pytest.raises(InvalidStatusTransition):
        report_card_service.update_report_card_status(db, card_id, "draft")


def test_draft_cannot_be_archived_directly(db, classroom):
    report_card_service.generate_class_report_cards(db, classroom.klass.id, classroom.period.id)
    card_id = db.query(ReportCardModel.id).first()[0]

    with pytest.raises(InvalidStatusTransition):
        report_card_service.update_report_card_status(db, card_id, "archived")
