from sqlalchemy import text

from portal.api.routes import auth_routes
from portal.services.eligibility import EligibilityResolver

from tests.conftest import (
    ADMIN_PASSWORD, COLLEGE_A, COLLEGE_B, OFFICER_A, OFFICER_B_EMAIL, OFFICER_PASSWORD, login, count_rows,
)


def add_range(client, headers, role_path="super-admin", **body):
    return client.post(f"/api/{role_path}/prn-ranges", json=body, headers=headers)


# ============================================================
# AUTH
# ============================================================

def test_login_and_me(client, admin_headers):
    response = client.get("/api/auth/me", headers=admin_headers)

    assert response.status_code == 200
    assert response.json()["role"] == "super_admin"


def test_login_rejects_wrong_password(client):
    response = client.post("/api/auth/login", json={"email": "admin@placementportal.in", "password": "nope-nope"})

    assert response.status_code == 401


def test_protected_routes_need_a_token(client):
    assert client.get("/api/super-admin/prn-ranges").status_code in (401, 403)


def test_officer_cannot_use_super_admin_routes(client, officer_a_headers):
    assert client.get("/api/super-admin/prn-ranges", headers=officer_a_headers).status_code == 403
    assert client.get("/api/super-admin/academic-year-reset/preview", headers=officer_a_headers).status_code == 403


# ============================================================
# REGISTRATION GATE
# ============================================================

def register(client, prn, college_id=COLLEGE_A, email=None):
    return client.post("/api/auth/register/student", json={
        "prn": prn,
        "college_id": college_id,
        "student_name": "Asha Patil",
        "email": email or f"{prn.strip()}@students.placementportal.in",
        "password": "student-pass-1",
    })


def test_registration_requires_whitelisted_prn(client, admin_headers, session_factory):
    assert register(client, "2301100").status_code == 403

    add_range(client, admin_headers, range_start="2301000", range_end="2301999")
    response = register(client, " 2301100 ")

    assert response.status_code == 201, response.text
    assert count_rows(session_factory, "students", "prn = '2301100'") == 1


def test_registration_rechecks_range_before_writing(client, admin_headers, session_factory, monkeypatch):
    range_id = add_range(client, admin_headers, range_start="2301000", range_end="2301999").json()["id"]

    class DisablesAfterVerdict(EligibilityResolver):
        def resolve(self, identifier, institution_id=None):
            verdict = super().resolve(identifier, institution_id)
            # another request disables the range between the check and the insert
            with session_factory() as db:
                db.execute(text("UPDATE prn_ranges SET is_enabled = FALSE WHERE id = :id"), {"id": range_id})
                db.commit()
            return verdict

    monkeypatch.setattr(auth_routes, "EligibilityResolver", DisablesAfterVerdict)

    response = register(client, "2301100")

    assert response.status_code == 403
    assert count_rows(session_factory, "students", "prn = '2301100'") == 0
    assert count_rows(session_factory, "users", "role = 'student'") == 0


def test_registration_respects_college_scope(client, officer_a_headers):
    response = add_range(client, officer_a_headers, role_path="placement-officer", single_prn="A-77")
    assert response.status_code == 201

    assert register(client, "A-77", college_id=COLLEGE_B).status_code == 403
    assert register(client, "A-77", college_id=COLLEGE_A).status_code == 201
    assert register(client, "A-77", college_id=COLLEGE_A, email="again@students.placementportal.in").status_code == 400


def test_eligibility_check(client, admin_headers):
    add_range(client, admin_headers, range_start="1000", range_end="1999")

    hit = client.post("/api/eligibility/check", json={"prn": "1200", "college_id": COLLEGE_A}).json()
    miss = client.post("/api/eligibility/check", json={"prn": "2200"}).json()

    assert hit["eligible"] is True
    assert hit["scope"] == "global"
    assert miss["eligible"] is False


def test_eligibility_check_rejects_blank_prn(client):
    response = client.post("/api/eligibility/check", json={"prn": "  "})

    assert response.status_code == 400
    assert response.json()["success"] is False


# ============================================================
# PRN RANGES
# ============================================================

def test_validation_errors_use_portal_error_body(client, admin_headers):
    response = add_range(client, admin_headers, range_start="1", range_end="9", single_prn="5")

    assert response.status_code == 400
    assert response.json() == {"success": False, "message": "Cannot provide both range and single PRN"}


def test_officer_view_and_read_only_super_admin_ranges(client, admin_headers, officer_a_headers):
    global_id = add_range(client, admin_headers, range_start="1000", range_end="1999").json()["id"]
    other_id = add_range(client, admin_headers, single_prn="B-1", college_id=COLLEGE_B).json()["id"]
    own = add_range(client, officer_a_headers, role_path="placement-officer", single_prn="A-1")
    own_id = own.json()["id"]
    assert own.json()["college_id"] == COLLEGE_A

    listed = client.get("/api/placement-officer/prn-ranges", headers=officer_a_headers).json()
    assert [r["id"] for r in listed["ranges"]] == [own_id, global_id]

    denied = client.put(
        f"/api/placement-officer/prn-ranges/{global_id}",
        json={"is_enabled": False, "disabled_reason": "mine"},
        headers=officer_a_headers,
    )
    assert denied.status_code == 403
    assert client.delete(f"/api/placement-officer/prn-ranges/{other_id}", headers=officer_a_headers).status_code == 403

    disabled = client.put(
        f"/api/placement-officer/prn-ranges/{own_id}",
        json={"is_enabled": False, "disabled_reason": "Batch closed"},
        headers=officer_a_headers,
    )
    assert disabled.status_code == 200
    assert disabled.json()["is_enabled"] is False

    assert client.delete(f"/api/placement-officer/prn-ranges/{own_id}", headers=officer_a_headers).status_code == 200


def test_other_officer_cannot_edit_range(client, officer_a_headers):
    range_id = add_range(client, officer_a_headers, role_path="placement-officer", single_prn="A-1").json()["id"]
    officer_b_headers = login(client, OFFICER_B_EMAIL, OFFICER_PASSWORD)

    response = client.put(
        f"/api/placement-officer/prn-ranges/{range_id}",
        json={"description": "not yours"},
        headers=officer_b_headers,
    )

    assert response.status_code == 403


def test_missing_range_is_404(client, admin_headers):
    response = client.delete("/api/super-admin/prn-ranges/999", headers=admin_headers)

    assert response.status_code == 404
    assert response.json()["success"] is False


def test_range_students(client, admin_headers, add_student):
    range_id = add_range(client, admin_headers, range_start="100", range_end="200").json()["id"]
    add_student("150", COLLEGE_A)
    add_student("250", COLLEGE_A)

    students = client.get(f"/api/super-admin/prn-ranges/{range_id}/students", headers=admin_headers).json()

    assert [s["prn"] for s in students] == ["150"]


# ============================================================
# ACADEMIC YEAR RESET
# ============================================================

def test_reset_preview_and_execute(client, admin_headers, session_factory, cycle_data):
    preview = client.get("/api/super-admin/academic-year-reset/preview", headers=admin_headers)
    assert preview.status_code == 200
    assert preview.json()["jobs"] == 12
    assert preview.json()["is_nothing_to_reset"] is False

    response = client.post(
        "/api/super-admin/academic-year-reset/execute",
        json={"academic_year": "2025-26", "confirmation_text": "RESET 2025-26", "password": ADMIN_PASSWORD},
        headers=admin_headers,
    )

    assert response.status_code == 200, response.text
    body = response.json()
    assert body["success"] is True
    assert body["data"]["db_reset"]["jobs_deleted"] == 12
    assert body["data"]["external_cleanup"]["deleted"] == 2
    assert count_rows(session_factory, "prn_ranges", "is_enabled = TRUE") == 0


def test_reset_gate_failures_map_to_status_codes(client, admin_headers, session_factory, cycle_data):
    url = "/api/super-admin/academic-year-reset/execute"

    bad_year = client.post(url, json={
        "academic_year": "2025", "confirmation_text": "RESET 2025", "password": ADMIN_PASSWORD,
    }, headers=admin_headers)
    bad_text = client.post(url, json={
        "academic_year": "2025-26", "confirmation_text": "reset 2025-26", "password": ADMIN_PASSWORD,
    }, headers=admin_headers)
    bad_password = client.post(url, json={
        "academic_year": "2025-26", "confirmation_text": "RESET 2025-26", "password": "wrong-password",
    }, headers=admin_headers)

    assert bad_year.status_code == 400
    assert bad_text.status_code == 400
    assert bad_password.status_code == 401
    assert count_rows(session_factory, "jobs") == 12


def test_activity_logs(client, admin_headers, session_factory):
    add_range(client, admin_headers, single_prn="1")
    add_range(client, admin_headers, single_prn="2")

    response = client.get(
        "/api/super-admin/activity-logs",
        params={"action_type": "ADD_PRN_RANGE", "page_size": 1},
        headers=admin_headers,
    )

    body = response.json()
    assert response.status_code == 200
    assert body["total"] == 2
    assert len(body["logs"]) == 1
    assert body["logs"][0]["metadata"]["single_prn"] == "2"


def test_activity_log_total_follows_user_filter(client, admin_headers, officer_a_headers):
    add_range(client, admin_headers, single_prn="1")
    add_range(client, officer_a_headers, role_path="placement-officer", single_prn="A-1")

    response = client.get("/api/super-admin/activity-logs", params={"user_id": OFFICER_A.user_id}, headers=admin_headers)

    body = response.json()
    assert response.status_code == 200
    assert [log["user_id"] for log in body["logs"]] == [OFFICER_A.user_id]
    assert body["total"] == 1


def test_health(client):
    response = client.get("/health")

    assert response.status_code == 200
    assert response.json()["postgres"] == "connected"
