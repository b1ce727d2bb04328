from sqlalchemy import create_engine, event           # SQLAlchemy 엔진 생성 도구
from sqlalchemy.orm import declarative_base          # 모델의 Base 클래스
from sqlalchemy.orm import sessionmaker              # 세션 팩토리 함수

from config.settings import settings                 # ✅ 환경변수 설정 파일 불러오기


def build_engine(url: str, **kwargs):
    """
    URL에 맞는 엔진 생성
    - sqlite: 스레드 체크 해제 + 외래키(ON DELETE CASCADE) 활성화
    - 그 외(MySQL 등): 풀 연결 사전 점검
    """
    if url.startswith("sqlite"):
        kwargs.setdefault("connect_args", {"check_same_thread": False})
        eng = create_engine(url, **kwargs)

        @event.listens_for(eng, "connect")
        def _enable_sqlite_fk(dbapi_conn, _record):
            cursor = dbapi_conn.cursor()
            cursor.execute("PRAGMA foreign_keys=ON")
            cursor.close()

        return eng

    kwargs.setdefault("pool_pre_ping", True)
    return create_engine(url, **kwargs)


# ✅ 환경변수에서 DB 연결 URL을 불러와 엔진 생성
engine = build_engine(settings.DATABASE_URL)

# ✅ 세션 팩토리: DB 연결에 사용할 세션 생성기 정의
SessionLocal = sessionmaker(autocommit=False, autoflush=False, bind=engine)

# ✅ 모델 정의 시 상속할 Base 클래스 (Declarative 방식 사용)
Base = declarative_base()
