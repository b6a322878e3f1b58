import pytest
from sqlalchemy import text

from portal.models.domain import DELETE_CATEGORIES, ResetPreview
from portal.services.reset_preview import ResetPreviewCalculator


def test_counts_every_category(session_factory, cycle_data):
    preview = ResetPreviewCalculator(session_factory).calculate()

    assert preview.jobs == 12
    assert preview.job_applications == 3
    assert preview.job_drives == 2
    assert preview.job_requests == 1
    assert preview.notifications == 2
    assert preview.admin_notifications == 1
    assert preview.activity_logs == 2
    assert preview.whitelist_requests == 1
    assert preview.cgpa_unlock_windows == 1
    assert preview.backlog_unlock_windows == 1
    assert preview.deleted_jobs_history == 1
    assert preview.active_prn_ranges == 2
    assert preview.active_students == 3
    assert preview.student_photos == 2
    assert preview.generated_at is not None
    assert not preview.is_nothing_to_reset


def test_disabled_ranges_and_inactive_students_are_not_counted(session_factory, add_student):
    add_student("1", active=False, photo_key=None)
    with session_factory() as db:
        db.execute(text("""
            INSERT INTO prn_ranges (single_prn, created_by_authority, is_enabled)
            VALUES ('1', 'super_admin', FALSE)
        """))
        db.commit()

    preview = ResetPreviewCalculator(session_factory).calculate()

    assert preview.active_prn_ranges == 0
    assert preview.active_students == 0
    assert preview.is_nothing_to_reset


def test_empty_database_has_nothing_to_reset(session_factory):
    assert ResetPreviewCalculator(session_factory).calculate().is_nothing_to_reset


def test_nothing_to_reset_when_all_zero():
    assert ResetPreview().is_nothing_to_reset


@pytest.mark.parametrize("category", list(DELETE_CATEGORIES) + ["active_prn_ranges", "student_photos"])
def test_any_single_category_means_something_to_reset(category):
    assert not ResetPreview(**{category: 1}).is_nothing_to_reset


def test_active_students_alone_do_not_count():
    # accounts without ranges, data or photos leave nothing for a reset to do
    assert ResetPreview(active_students=5).is_nothing_to_reset


def test_preview_writes_nothing(session_factory, cycle_data):
    calculator = ResetPreviewCalculator(session_factory)

    first = calculator.calculate()
    second = calculator.calculate()

    assert first.model_dump(exclude={"generated_at"}) == second.model_dump(exclude={"generated_at"})
