"""Shared fixtures. The database path is pointed at a temp file before anything imports the config."""
import os
import random
import tempfile

os.environ.setdefault("DATABASE_PATH", os.path.join(tempfile.mkdtemp(prefix="anagram-tests-"), "anagram.db"))

import pytest

from anagram.core.clock import FakeClock
from anagram.persistence.db import init_db
from anagram.persistence.repositories.sqlite.sqlite_assignment_repository import SqliteAssignmentRepository


@pytest.fixture
def rng():
    return random.Random(1234)


@pytest.fixture
def clock():
    return FakeClock()


@pytest.fixture
def db_path(tmp_path):
    path = str(tmp_path / "anagram.db")
    init_db(path)
    return path


@pytest.fixture
def repo(db_path):
    return SqliteAssignmentRepository(db_path)
