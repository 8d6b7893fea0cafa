from harmony.db import transaction
from harmony.models.job import Job, JobLink, JobStatus


def test_job_status(make_client, stub_service, engine) -> None:
    job = Job(request_id="a1b2", request="http://testserver/C1/wms", username="jdoe")
    job.transition(JobStatus.DISPATCHED)
    job.transition(JobStatus.SUCCESSFUL)
    with transaction(engine) as tx:
        job.save(tx)
        JobLink(job_id=job.id, href="http://example.com/a.tif", type="image/tiff").save(tx)
    client = make_client(stub_service())

    response = client.get("/jobs/a1b2")

    assert response.status_code == 200
    payload = response.json()
    assert payload["jobID"] == "a1b2"
    assert payload["username"] == "jdoe"
    assert payload["status"] == "successful"
    assert payload["progress"] == 100
    assert payload["links"] == [
        {"href": "http://example.com/a.tif", "rel": "data", "type": "image/tiff"},
        {"href": "http://testserver/jobs/a1b2", "rel": "self", "type": "application/json"},
    ]


def test_unknown_job_is_not_found(make_client, stub_service) -> None:
    client = make_client(stub_service())

    response = client.get("/jobs/missing-id")

    assert response.status_code == 404
    assert response.json() == {"detail": {"code": "NotFound", "description": "Job 'missing-id' not found"}}
