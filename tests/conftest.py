# tests/conftest.py
import os

# アプリのモジュールを import する前に必須の環境変数を用意する
os.environ.setdefault("DATABASE_URL", "sqlite://")
os.environ.setdefault("JWT_SECRET", "test-secret")

from pathlib import Path

import pytest
from fastapi.testclient import TestClient
from sqlalchemy import create_engine
from sqlalchemy.orm import Session, sessionmaker

from auth.security import create_access_token, hash_password
from db.database import Base, get_db
from main import app
from models.user import User
from repositories.task_repository import TaskRepository
from services.task_service import TaskService


@pytest.fixture()
def engine(tmp_path: Path):
    """
    テストごとに使い捨ての SQLite ファイル
    （スレッドをまたいで使うテストがあるのでインメモリではなくファイル）
    """
    engine = create_engine(
        f"sqlite:///{tmp_path / 'tasks.sqlite3'}",
        connect_args={"check_same_thread": False},
    )
    Base.metadata.create_all(bind=engine)
    yield engine
    engine.dispose()


@pytest.fixture()
def session_factory(engine):
    return sessionmaker(autocommit=False, autoflush=False, bind=engine)


@pytest.fixture()
def db(session_factory) -> Session:
    session = session_factory()
    yield session
    session.close()


@pytest.fixture()
def make_user(db: Session):
    def _make(email: str = "alice@example.com", name: str = "Alice", password: str = "password123") -> User:
        user = User(name=name, email=email, password_hash=hash_password(password))
        db.add(user)
        db.commit()
        db.refresh(user)
        return user

    return _make


@pytest.fixture()
def user(make_user) -> User:
    return make_user()


@pytest.fixture()
def other_user(make_user) -> User:
    return make_user(email="bob@example.com", name="Bob")


@pytest.fixture()
def service(db: Session) -> TaskService:
    return TaskService(TaskRepository(db))


@pytest.fixture()
def client(session_factory):
    def _override_get_db():
        session = session_factory()
        try:
            yield session
        finally:
            session.close()

    app.dependency_overrides[get_db] = _override_get_db
    with TestClient(app) as c:
        yield c
    app.dependency_overrides.clear()


@pytest.fixture()
def auth_headers(user: User) -> dict:
    return {"Authorization": f"Bearer {create_access_token(user.user_id)}"}


@pytest.fixture()
def other_auth_headers(other_user: User) -> dict:
    return {"Authorization": f"Bearer {create_access_token(other_user.user_id)}"}
