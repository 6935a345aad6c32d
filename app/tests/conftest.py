import pytest
from sqlalchemy import create_engine
from sqlalchemy.orm import sessionmaker
from sqlalchemy.pool import StaticPool

from app.core.database import Base
from app.models import analysis, user  # noqa: F401
from app.services.pipeline_service import RequestPipeline
from app.services.record_service import RecordService
from app.tests.fakes import FakeAnalyzer, FakeStorage, FakeTelegram, RecordSpy


@pytest.fixture
def session_factory():
    engine = create_engine(
        "sqlite://",
        connect_args={"check_same_thread": False},
        poolclass=StaticPool
    )
    Base.metadata.create_all(bind=engine)
    factory = sessionmaker(autocommit=False, autoflush=False, bind=engine)
    yield factory
    engine.dispose()


@pytest.fixture
def record_service(session_factory):
    return RecordService(session_factory)


@pytest.fixture
def records(record_service):
    return RecordSpy(record_service)


@pytest.fixture
def telegram():
    return FakeTelegram()


@pytest.fixture
def storage():
    return FakeStorage()


@pytest.fixture
def analyzer():
    return FakeAnalyzer()


@pytest.fixture
def pipeline(records, storage, analyzer, telegram):
    return RequestPipeline(records, storage, analyzer, telegram,
                           max_file_size=20 * 1024 * 1024, max_text_length=10000)
