from dataclasses import dataclass
from typing import Dict

import pytest
from fastapi.testclient import TestClient

from secure_exam.core.config import Settings
from secure_exam.core.database import init_db
from secure_exam.main import create_app
from secure_exam.models import Question, Student

EXAM_PASSWORD = "letmein-2024"

ROSTER = [
    ("S001", "Asha Rao", "BSc", "Physics"),
    ("S002", "Ben Okafor", "BSc", "Chemistry"),
    ("S003", "Chen Li", "BA", "History"),
    ("S004", "Dana Whitfield", "BA", "English"),
]


@dataclass
class Bank:
    """Ids of the seeded question bank, by role."""

    ids: Dict[str, int]

    def __getitem__(self, key: str) -> int:
        return self.ids[key]

    @property
    def answerable(self):
        return {self.ids[k] for k in ("single_a", "single_b", "multi_ac", "single_d", "member_1", "member_2")}


def seed_roster(db) -> None:
    db.add_all([
        Student(student_identifier=sid, full_name=name, degree=degree, course=course)
        for sid, name, degree, course in ROSTER
    ])


def seed_questions(db) -> Bank:
    questions = {
        "single_a": Question(prompt="2 + 2?", option_a="4", option_b="5", option_c="3", option_d="22",
                             correct_option="A"),
        "single_b": Question(prompt="Capital of France?", option_a="Rome", option_b="Paris",
                             option_c="Lyon", option_d="Nice", correct_option="B"),
        "multi_ac": Question(prompt="Pick the primes", option_a="2", option_b="4", option_c="5", option_d="9",
                             correct_option="A,C", allows_multiple=True),
        "single_d": Question(prompt="Largest planet?", option_a="Mars", option_b="Venus", option_c="Earth",
                             option_d="Jupiter", correct_option="D"),
        "header": Question(prompt="Read the passage below.", question_group_id="G1", is_group_header=True),
        "member_1": Question(prompt="Passage Q (second)", option_a="x", option_b="y", correct_option="A",
                             question_group_id="G1", group_order=2),
        "member_2": Question(prompt="Passage Q (first)", option_a="x", option_b="y", correct_option="B",
                             question_group_id="G1", group_order=1),
        "retired": Question(prompt="Old question", option_a="x", correct_option="A", is_active=False),
    }
    db.add_all(questions.values())
    db.flush()
    return Bank({key: q.id for key, q in questions.items()})


@pytest.fixture
def settings(tmp_path):
    return Settings(
        DATABASE_URL=f"sqlite:///{tmp_path / 'exam.db'}",
        EXAM_PASSWORD=EXAM_PASSWORD,
        SESSION_DURATION_MINUTES=45,
        LOG_LEVEL="WARNING",
        DATABASE_LOCK_TIMEOUT_MS=20000,
    )


@pytest.fixture
def app(settings):
    app = create_app(settings)
    init_db(app.state.engine)
    yield app
    app.state.engine.dispose()


@pytest.fixture
def db_factory(app):
    return app.state.session_factory


@pytest.fixture
def bank(db_factory):
    with db_factory() as db, db.begin():
        seed_roster(db)
        return seed_questions(db)


@pytest.fixture
def client(app, bank):
    with TestClient(app) as c:
        yield c


def login_payload(student_id="S001", name="Asha Rao", password=EXAM_PASSWORD, **extra):
    payload = {"name": name, "degree": "BSc", "course": "Physics", "studentId": student_id,
               "examPassword": password}
    payload.update(extra)
    return payload


@pytest.fixture
def session_id(client):
    r = client.post("/api/session/login", json=login_payload())
    assert r.status_code == 200, r.text
    return r.json()["data"]["sessionId"]
