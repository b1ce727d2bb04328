"""
database/init_db.py

- 모든 모델을 import 해서 Base.metadata 에 등록한 뒤 테이블 생성
- 운영 DB 는 별도 마이그레이션으로 관리하고, 개발/테스트 환경에서만 사용
"""

from database.db import Base, engine

# ✅ 테이블 등록용 import (사용하지 않아도 지우지 말 것)
from models import badges, classes, grades, report_cards, report_periods, schools, students, subjects  # noqa: F401


def init_db(bind=None):
    Base.metadata.create_all(bind=bind or engine)


if __name__ == "__main__":
    init_db()
    print("✅ 테이블 생성 완료")
