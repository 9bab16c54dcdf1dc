# tests/test_store.py
import pytest

from pigen.exceptions import InvalidTransition, PersistenceFailure
from pigen.models import JobKind, JobStatus


def test_create_persists_queued_record(store):
    job = store.create("job_a", "c1", "emp1")
    assert job.status == JobStatus.QUEUED
    assert job.kind == JobKind.GENERATE_PDF

    loaded = store.get("job_a")
    assert loaded.subject_id == "c1"
    assert loaded.tenant_id == "emp1"
    assert loaded.result_path is None and loaded.error is None


def test_get_unknown_returns_none(store):
    assert store.get("job_nonexistent") is None


def test_done_keeps_result_fields_and_refreshes_updated_at(store):
    created = store.create("job_b", "c1")
    store.transition("job_b", JobStatus.RUNNING)
    done = store.transition("job_b", JobStatus.DONE, result_path="/tmp/job_b.pdf",
                            result_url="https://x/job_b.pdf", error="ignored")
    assert done.status == JobStatus.DONE
    assert done.result_path == "/tmp/job_b.pdf"
    assert done.result_url == "https://x/job_b.pdf"
    assert done.error is None
    assert done.updated_at >= created.updated_at


def test_failed_drops_result_fields(store):
    store.create("job_c", "c1")
    store.transition("job_c", JobStatus.RUNNING)
    failed = store.transition("job_c", JobStatus.FAILED, error="boom", result_path="/tmp/x.pdf")
    assert failed.error == "boom"
    assert failed.result_path is None
    assert failed.result_url is None


def test_queued_can_fail_directly(store):
    store.create("job_d", "c1")
    assert store.transition("job_d", JobStatus.FAILED, error="x").status == JobStatus.FAILED


@pytest.mark.parametrize("terminal", [JobStatus.DONE, JobStatus.FAILED])
def test_terminal_states_are_final(store, terminal):
    store.create("job_e", "c1")
    store.transition("job_e", JobStatus.RUNNING)
    store.transition("job_e", terminal, result_path="/tmp/e.pdf", error="e")
    for target in (JobStatus.QUEUED, JobStatus.RUNNING, JobStatus.DONE, JobStatus.FAILED):
        with pytest.raises(InvalidTransition):
            store.transition("job_e", target)
    assert store.get("job_e").status == terminal


def test_queued_cannot_jump_to_done(store):
    store.create("job_f", "c1")
    with pytest.raises(InvalidTransition):
        store.transition("job_f", JobStatus.DONE, result_path="/tmp/f.pdf")


def test_transition_of_missing_record(store):
    with pytest.raises(PersistenceFailure):
        store.transition("job_missing", JobStatus.RUNNING)


def test_snapshot_shape(store):
    store.create("job_g", "c9", "emp2")
    snap = store.get("job_g").snapshot()
    assert snap["jobId"] == "job_g"
    assert snap["type"] == "generate_pdf"
    assert snap["subjectId"] == "c9"
    assert snap["tenantId"] == "emp2"
    assert snap["status"] == "queued"
    assert set(snap) == {"jobId", "type", "subjectId", "tenantId", "status", "resultPath",
                         "resultUrl", "error", "createdAt", "updatedAt"}


def test_timestamps_are_timezone_aware(store):
    from datetime import datetime, timezone

    from pigen.models import Job, utcnow

    assert utcnow().tzinfo is timezone.utc
    assert Job(job_id="job_h", subject_id="c1").created_at.tzinfo is not None

    store.create("job_h", "c1")
    store.transition("job_h", JobStatus.RUNNING)
    snap = store.get("job_h").snapshot()
    assert datetime.fromisoformat(snap["createdAt"]) <= datetime.fromisoformat(snap["updatedAt"])
