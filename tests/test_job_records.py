import threading
from dataclasses import dataclass
from typing import ClassVar

import pytest
from sqlalchemy import Column, DateTime, Integer, MetaData, String, Table, Text, select

from harmony.db import job_links_table, jobs_table, transaction
from harmony.errors import ValidationError
from harmony.models.job import Job, JobLink, JobStatus
from harmony.models.record import Record, RecordState


def _job(**overrides) -> Job:
    values = {"request_id": "req-1", "request": "http://testserver/C1/wms?request=GetMap"}
    values.update(overrides)
    return Job(**values)


def test_insert_populates_id_and_timestamps(engine) -> None:
    job = _job()
    assert job.state is RecordState.UNSAVED

    with transaction(engine) as tx:
        job.save(tx)

    assert job.id is not None
    assert job.state is RecordState.PERSISTED
    assert job.created_at is not None
    assert job.created_at == job.updated_at


def test_update_advances_updated_at_only(engine) -> None:
    job = _job()
    with transaction(engine) as tx:
        job.save(tx)
    created_at = job.created_at
    first_update = job.updated_at

    job.transition(JobStatus.DISPATCHED)
    with transaction(engine) as tx:
        job.save(tx)

    assert job.created_at == created_at
    assert job.updated_at > first_update
    with transaction(engine) as tx:
        stored = Job.by_request_id(tx, "req-1")
    assert stored.status == JobStatus.DISPATCHED
    assert stored.created_at == created_at
    assert stored.id == job.id


def test_repeated_saves_only_insert_once(engine) -> None:
    job = _job()
    with transaction(engine) as tx:
        job.save(tx)
        job.save(tx)
        job.save(tx)

    with transaction(engine) as tx:
        rows = tx.execute(select(jobs_table)).all()
    assert len(rows) == 1


def test_invalid_record_is_not_written(engine) -> None:
    job = _job(request_id="", progress=150)

    with pytest.raises(ValidationError) as exc_info:
        with transaction(engine) as tx:
            job.save(tx)

    assert "Job request_id must be set" in exc_info.value.errors
    assert "Job progress must be an integer between 0 and 100" in exc_info.value.errors
    assert job.id is None
    assert job.state is RecordState.UNSAVED
    with transaction(engine) as tx:
        assert tx.execute(select(jobs_table)).all() == []


def test_failed_transaction_rolls_back_every_save(engine) -> None:
    job = _job()

    with pytest.raises(ValidationError):
        with transaction(engine) as tx:
            job.save(tx)
            JobLink(job_id=job.id, href="").save(tx)

    with transaction(engine) as tx:
        assert tx.execute(select(jobs_table)).all() == []
        assert tx.execute(select(job_links_table)).all() == []


def test_concurrent_transactions_on_shared_connection_do_not_interleave(engine) -> None:
    entered = threading.Event()
    release = threading.Event()
    committed = threading.Event()

    def rolled_back() -> None:
        with pytest.raises(RuntimeError):
            with transaction(engine) as tx:
                _job(request_id="req-rolled-back").save(tx)
                entered.set()
                release.wait(timeout=2)
                raise RuntimeError("abort")

    def kept() -> None:
        with transaction(engine) as tx:
            _job(request_id="req-kept").save(tx)
        committed.set()

    first = threading.Thread(target=rolled_back)
    first.start()
    assert entered.wait(timeout=2)
    second = threading.Thread(target=kept)
    second.start()

    assert not committed.wait(timeout=0.2)
    release.set()
    first.join(timeout=2)
    second.join(timeout=2)

    assert committed.is_set()
    with transaction(engine) as tx:
        assert [row.request_id for row in tx.execute(select(jobs_table)).all()] == ["req-kept"]


def test_unknown_fields_are_rejected() -> None:
    with pytest.raises(TypeError):
        Job(request_id="req-1", request="http://testserver", colour="blue")


def test_job_transitions() -> None:
    job = _job()

    job.transition(JobStatus.DISPATCHED)
    job.transition(JobStatus.DISPATCHED)
    job.transition(JobStatus.SUCCESSFUL, "done")

    assert job.status == JobStatus.SUCCESSFUL
    assert job.progress == 100
    assert job.message == "done"
    assert job.is_terminal


@pytest.mark.parametrize(
    "path",
    [
        [JobStatus.SUCCESSFUL],
        [JobStatus.DISPATCHED, JobStatus.FAILED, JobStatus.DISPATCHED],
        [JobStatus.DISPATCHED, JobStatus.SUCCESSFUL, JobStatus.FAILED],
    ],
)
def test_job_rejects_disallowed_transitions(path) -> None:
    job = _job()
    *allowed, rejected = path
    for status in allowed:
        job.transition(status)

    with pytest.raises(ValidationError, match="Invalid job status transition"):
        job.transition(rejected)


def test_job_links_are_loaded_with_the_job(engine) -> None:
    job = _job()
    with transaction(engine) as tx:
        job.save(tx)
        JobLink(job_id=job.id, href="http://example.com/result.tif", type="image/tiff").save(tx)

    with transaction(engine) as tx:
        stored = Job.by_request_id(tx, "req-1")
        payload = stored.serialize(stored.links(tx))

    assert payload["jobID"] == "req-1"
    assert payload["status"] == "created"
    assert payload["links"] == [{"href": "http://example.com/result.tif", "rel": "data", "type": "image/tiff"}]


widgets_metadata = MetaData()
widgets_table = Table(
    "widgets",
    widgets_metadata,
    Column("id", Integer, primary_key=True, autoincrement=True),
    Column("name", String(32), nullable=False),
    Column("notes", Text, nullable=True),
    Column("created_at", DateTime(timezone=True), nullable=False),
    Column("updated_at", DateTime(timezone=True), nullable=False),
)


@dataclass(kw_only=True)
class Widget(Record):
    table: ClassVar[Table] = widgets_table

    name: str
    notes: str | None = None


def test_records_without_validation_rules_save_as_is(engine) -> None:
    widgets_metadata.create_all(engine)
    widget = Widget(name="gear")

    with transaction(engine) as tx:
        widget.save(tx)
        widget.notes = "oiled"
        widget.save(tx)

    with transaction(engine) as tx:
        found = Widget.find(tx, name="gear")
    assert [(w.id, w.notes) for w in found] == [(widget.id, "oiled")]
