from typing import Dict, Iterable, List, Optional

import pytest
from botocore.exceptions import ClientError
from fastapi.testclient import TestClient
from sqlalchemy import create_engine, text
from sqlalchemy.orm import sessionmaker

from portal.core.auth import PasswordVerifier, hash_password
from portal.db.postgres import get_session_factory
from portal.db.schema import create_schema
from portal.models.domain import Actor, Authority
from portal.services.asset_cleaner import ExternalAssetCleaner, get_asset_cleaner
from portal.services.audit_logger import AuditLogger
from portal.services.range_registry import RangeRegistry
from portal.services.reset_executor import AcademicYearReset, ResetExecutor
from portal.services.reset_preview import ResetPreviewCalculator

ADMIN_EMAIL = "admin@placementportal.in"
ADMIN_PASSWORD = "admin-pass-123"
OFFICER_A_EMAIL = "officer.a@placementportal.in"
OFFICER_B_EMAIL = "officer.b@placementportal.in"
OFFICER_PASSWORD = "officer-pass-123"
STUDENT_PASSWORD = "student-pass-123"

COLLEGE_A = 1
COLLEGE_B = 2

SUPER_ADMIN = Actor(user_id=1, authority=Authority.super_admin)
OFFICER_A = Actor(user_id=2, authority=Authority.placement_officer, institution_id=COLLEGE_A)
OFFICER_B = Actor(user_id=3, authority=Authority.placement_officer, institution_id=COLLEGE_B)

# bcrypt is slow; hash each password once per run
_HASHES: Dict[str, str] = {}


def password_hash(password: str) -> str:
    if password not in _HASHES:
        _HASHES[password] = hash_password(password)
    return _HASHES[password]


class FakeS3Client:
    """In-memory stand-in for the boto3 S3 client calls the cleaner makes."""

    def __init__(self, objects: Iterable[str] = (), failing: Iterable[str] = ()):
        self.objects = set(objects)
        self.failing = set(failing)
        self.delete_calls: List[List[str]] = []

    def head_bucket(self, Bucket):
        return {}

    def delete_object(self, Bucket, Key):
        if Key in self.failing:
            raise ClientError({"Error": {"Code": "AccessDenied", "Message": "Access Denied"}}, "DeleteObject")
        self.objects.discard(Key)
        return {}

    def delete_objects(self, Bucket, Delete):
        keys = [obj["Key"] for obj in Delete["Objects"]]
        self.delete_calls.append(keys)
        errors = []
        for key in keys:
            if key in self.failing:
                errors.append({"Key": key, "Code": "AccessDenied", "Message": "Access Denied"})
            else:
                self.objects.discard(key)
        return {"Deleted": [{"Key": k} for k in keys if k not in self.failing], "Errors": errors}

    def list_objects_v2(self, Bucket, Prefix, ContinuationToken=None):
        keys = sorted(k for k in self.objects if k.startswith(Prefix))
        return {"Contents": [{"Key": k} for k in keys], "IsTruncated": False}


# ============================================================
# DATABASE
# ============================================================

@pytest.fixture()
def engine(tmp_path):
    db_path = tmp_path / "portal.db"
    engine = create_engine(f"sqlite:///{db_path}", connect_args={"check_same_thread": False})
    create_schema(engine)
    yield engine
    engine.dispose()


@pytest.fixture()
def session_factory(engine):
    session_factory = sessionmaker(bind=engine, autocommit=False, autoflush=False)
    seed_base_data(session_factory)
    return session_factory


def seed_base_data(session_factory: sessionmaker) -> None:
    """Two colleges, one super admin and one placement officer per college."""
    with session_factory() as db:
        db.execute(text("INSERT INTO regions (id, region_name) VALUES (1, 'West')"))
        db.execute(text("""
            INSERT INTO colleges (id, region_id, college_name, college_code) VALUES
                (1, 1, 'College A', 'COLA'),
                (2, 1, 'College B', 'COLB')
        """))
        users = [
            (1, ADMIN_EMAIL, password_hash(ADMIN_PASSWORD), "super_admin"),
            (2, OFFICER_A_EMAIL, password_hash(OFFICER_PASSWORD), "placement_officer"),
            (3, OFFICER_B_EMAIL, password_hash(OFFICER_PASSWORD), "placement_officer"),
        ]
        for user_id, email, pw_hash, role in users:
            db.execute(
                text("INSERT INTO users (id, email, password_hash, role, is_active) VALUES (:id, :email, :pw, :role, TRUE)"),
                {"id": user_id, "email": email, "pw": pw_hash, "role": role},
            )
        db.execute(text("""
            INSERT INTO placement_officers (user_id, college_id, officer_name) VALUES
                (2, 1, 'Officer A'),
                (3, 2, 'Officer B')
        """))
        db.commit()


def count_rows(session_factory: sessionmaker, table: str, where: str = "1 = 1") -> int:
    with session_factory() as db:
        return db.execute(text(f"SELECT COUNT(*) FROM {table} WHERE {where}")).scalar_one()


@pytest.fixture()
def add_student(session_factory):
    """Insert a student user + profile; returns the student's user id."""

    def _add(prn: str, college_id: int = COLLEGE_A, active: bool = True, photo_key: Optional[str] = None) -> int:
        with session_factory() as db:
            user_id = db.execute(
                text("""
                    INSERT INTO users (email, password_hash, role, is_active)
                    VALUES (:email, :pw, 'student', :active)
                    RETURNING id
                """),
                {"email": f"{prn}@students.placementportal.in", "pw": password_hash(STUDENT_PASSWORD), "active": active},
            ).scalar_one()
            db.execute(
                text("""
                    INSERT INTO students (user_id, prn, college_id, student_name, email, photo_url, photo_storage_key)
                    VALUES (:user_id, :prn, :college_id, :name, :email, :photo_url, :photo_key)
                """),
                {
                    "user_id": user_id,
                    "prn": prn,
                    "college_id": college_id,
                    "name": f"Student {prn}",
                    "email": f"{prn}@students.placementportal.in",
                    "photo_url": f"https://media.test/{photo_key}" if photo_key else None,
                    "photo_key": photo_key,
                },
            )
            db.commit()
        return user_id

    return _add


def user_is_active(session_factory: sessionmaker, user_id: int) -> bool:
    with session_factory() as db:
        return bool(db.execute(text("SELECT is_active FROM users WHERE id = :id"), {"id": user_id}).scalar_one())


@pytest.fixture()
def add_jobs(session_factory):
    def _add(count: int) -> List[int]:
        ids = []
        with session_factory() as db:
            for i in range(count):
                ids.append(db.execute(
                    text("INSERT INTO jobs (company_name, job_title, created_by) VALUES (:c, :t, 1) RETURNING id"),
                    {"c": f"Company {i}", "t": f"Engineer {i}"},
                ).scalar_one())
            db.commit()
        return ids

    return _add


@pytest.fixture()
def cycle_data(session_factory, add_student, add_jobs):
    """
    A finished placement cycle: 12 jobs, applications, drives, requests,
    notifications, unlock windows, history, logs, two enabled ranges,
    three students (two with photos).
    """
    student_users = [
        add_student("2301001", COLLEGE_A, photo_key="students/2301001/photo_a.jpg"),
        add_student("2301002", COLLEGE_A, photo_key="students/2301002/photo_b.jpg"),
        add_student("2301003", COLLEGE_B),
    ]
    job_ids = add_jobs(12)
    with session_factory() as db:
        student_ids = [r[0] for r in db.execute(text("SELECT id FROM students ORDER BY id")).fetchall()]
        for job_id, student_id in zip(job_ids, student_ids):
            db.execute(
                text("INSERT INTO job_applications (job_id, student_id) VALUES (:j, :s)"),
                {"j": job_id, "s": student_id},
            )
        db.execute(text("INSERT INTO job_drives (job_id, venue) VALUES (:j, 'Hall 1'), (:j, 'Hall 2')"), {"j": job_ids[0]})
        db.execute(text("INSERT INTO job_requests (placement_officer_id, company_name) VALUES (1, 'Acme')"))
        db.execute(text("INSERT INTO notifications (title, message, created_by) VALUES ('Drive', 'Tomorrow', 1), ('Result', 'Out', 1)"))
        db.execute(text("INSERT INTO admin_notifications (message) VALUES ('New job request')"))
        db.execute(text("INSERT INTO whitelist_requests (student_id, reason) VALUES (:s, 'Lateral entry')"), {"s": student_ids[0]})
        db.execute(text("INSERT INTO cgpa_unlock_windows (college_id) VALUES (1)"))
        db.execute(text("INSERT INTO backlog_unlock_windows (college_id) VALUES (1)"))
        db.execute(text("INSERT INTO deleted_jobs_history (job_id, job_title, deleted_by) VALUES (99, 'Old', 1)"))
        db.execute(text("""
            INSERT INTO activity_logs (user_id, action_type, action_description)
            VALUES (1, 'LOGIN', 'Logged in'), (2, 'LOGIN', 'Logged in')
        """))
        db.execute(text("""
            INSERT INTO prn_ranges (range_start, range_end, college_id, created_by_authority, added_by, is_enabled)
            VALUES ('2301000', '2301999', NULL, 'super_admin', 1, TRUE)
        """))
        db.execute(text("""
            INSERT INTO prn_ranges (single_prn, college_id, created_by_authority, added_by, is_enabled)
            VALUES ('2301555', 1, 'placement_officer', 2, TRUE)
        """))
        db.commit()
    return {"student_users": student_users, "job_ids": job_ids}


# ============================================================
# SERVICES
# ============================================================

@pytest.fixture()
def audit(session_factory):
    return AuditLogger(session_factory)


@pytest.fixture()
def registry(session_factory, audit):
    return RangeRegistry(session_factory, audit)


@pytest.fixture()
def fake_s3():
    return FakeS3Client(objects=[
        "students/2301001/photo_a.jpg",
        "students/2301001/thumb_a.jpg",
        "students/2301002/photo_b.jpg",
    ])


@pytest.fixture()
def cleaner(fake_s3):
    return ExternalAssetCleaner(client=fake_s3, bucket="portal-media", batch_size=100)


@pytest.fixture()
def executor(session_factory, audit, cleaner):
    return ResetExecutor(session_factory, audit, cleaner)


@pytest.fixture()
def make_wizard(session_factory, executor, audit):
    def _make(actor: Actor = SUPER_ADMIN, executor: ResetExecutor = executor) -> AcademicYearReset:
        return AcademicYearReset(
            actor,
            ResetPreviewCalculator(session_factory),
            PasswordVerifier(session_factory),
            executor,
            audit,
        )

    return _make


# ============================================================
# HTTP
# ============================================================

@pytest.fixture()
def client(session_factory, cleaner):
    from portal.main import app

    app.dependency_overrides[get_session_factory] = lambda: session_factory
    app.dependency_overrides[get_asset_cleaner] = lambda: cleaner
    with TestClient(app) as test_client:
        yield test_client
    app.dependency_overrides.clear()


def login(client: TestClient, email: str, password: str) -> Dict[str, str]:
    response = client.post("/api/auth/login", json={"email": email, "password": password})
    assert response.status_code == 200, response.text
    return {"Authorization": f"Bearer {response.json()['access_token']}"}


@pytest.fixture()
def admin_headers(client):
    return login(client, ADMIN_EMAIL, ADMIN_PASSWORD)


@pytest.fixture()
def officer_a_headers(client):
    return login(client, OFFICER_A_EMAIL, OFFICER_PASSWORD)
