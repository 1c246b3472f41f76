from sqlalchemy import create_engine
from sqlalchemy.orm import sessionmaker, declarative_base

from brainguard.config import settings

# Base 클래스 (모든 모델이 상속)
Base = declarative_base()


def create_db_engine(database_url: str):
    # sqlite는 스케줄러 스레드와 API 스레드가 같은 파일을 공유
    if database_url.startswith("sqlite"):
        return create_engine(
            database_url,
            connect_args={"check_same_thread": False},
        )

    # pool_pre_ping=True → 연결 끊김 자동 복구
    # pool_recycle=3600 → 1시간마다 재연결
    return create_engine(
        database_url,
        pool_pre_ping=True,
        pool_recycle=3600,
        pool_size=10,
        max_overflow=20,
    )


def create_session_factory(db_engine):
    return sessionmaker(
        autocommit=False,
        autoflush=False,
        bind=db_engine,
    )


engine = create_db_engine(settings.database_url)

# 세션 팩토리
SessionLocal = create_session_factory(engine)


def init_db(db_engine=None):
    # 모든 모델 import 후 테이블 생성
    import brainguard.models  # noqa: F401

    Base.metadata.create_all(bind=db_engine or engine)
