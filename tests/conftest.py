"""Pytest configuration and fixtures."""

import itertools
import os

os.environ.setdefault("LIBRARY_DATABASE_URL", "sqlite://")

from datetime import datetime

import pytest
from fastapi.testclient import TestClient
from sqlalchemy.orm import sessionmaker
from sqlalchemy.pool import StaticPool

from circulation import models
from circulation.config import DatabaseConfig
from circulation.database import Base, build_engine, get_db
from main import app

_serial = itertools.count(1)


@pytest.fixture
def engine():
    engine = build_engine(DatabaseConfig(url="sqlite://"), poolclass=StaticPool)
    Base.metadata.create_all(bind=engine)
    yield engine
    engine.dispose()


@pytest.fixture
def session_factory(engine):
    return sessionmaker(bind=engine, autocommit=False, autoflush=False)


@pytest.fixture
def db(session_factory):
    session = session_factory()
    yield session
    session.close()


@pytest.fixture
def client(session_factory):
    def override_get_db():
        session = session_factory()
        try:
            yield session
        finally:
            session.close()

    app.dependency_overrides[get_db] = override_get_db
    with TestClient(app) as test_client:
        yield test_client
    app.dependency_overrides.clear()


@pytest.fixture
def now() -> datetime:
    """Fixed instant so due dates and fines are deterministic."""
    return datetime(2025, 3, 3, 9, 30)


@pytest.fixture
def make_book(db):
    def factory(total_copies: int = 1, **overrides) -> models.Book:
        n = next(_serial)
        book = models.Book(
            isbn=overrides.pop("isbn", f"978{n:010d}"),
            book_name=overrides.pop("book_name", f"Test Book {n}"),
            book_author=overrides.pop("book_author", "Test Author"),
            book_category=overrides.pop("book_category", "Fiction"),
            total_copies=total_copies,
            available_copies=overrides.pop("available_copies", total_copies),
            is_active=overrides.pop("is_active", True),
        )
        db.add(book)
        db.commit()
        db.refresh(book)
        return book

    return factory


@pytest.fixture
def make_student(db):
    def factory(max_books_allowed: int = 3, **overrides) -> models.Student:
        n = next(_serial)
        student = models.Student(
            student_code=overrides.pop("student_code", f"STU{n:05d}"),
            student_name=overrides.pop("student_name", f"Student {n}"),
            student_email=overrides.pop("student_email", f"student{n}@school.example"),
            status=overrides.pop("status", models.StudentStatus.ACTIVE),
            max_books_allowed=max_books_allowed,
            current_books_issued=overrides.pop("current_books_issued", 0),
        )
        db.add(student)
        db.commit()
        db.refresh(student)
        return student

    return factory
