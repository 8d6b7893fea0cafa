import threading

import anyio.to_thread

COLLECTION = "C1215669046-GES_DISC"
RANGESET_URL = f"/{COLLECTION}/ogc-api-coverages/1.0.0/collections/all/coverage/rangeset"


def _callback_path(callback_url: str) -> str:
    return callback_url.removeprefix("http://localhost:3001")


def test_backend_callback_completes_waiting_request(make_client, stub_service, registry) -> None:
    started = threading.Event()
    service = stub_service(lambda service, operation, callback_url: started.set())
    client = make_client(service)
    result = {}

    def request() -> None:
        result["response"] = client.get(RANGESET_URL)

    waiting = threading.Thread(target=request)
    waiting.start()
    assert started.wait(timeout=2)
    _, callback_url = service.invocations[0]

    callback = client.post(
        _callback_path(callback_url),
        content=b"netcdf-bytes",
        headers={"content-type": "application/x-netcdf4"},
    )
    waiting.join(timeout=5)

    assert callback.status_code == 200
    assert result["response"].status_code == 200
    assert result["response"].content == b"netcdf-bytes"
    assert result["response"].headers["content-type"] == "application/x-netcdf4"
    assert not registry.is_bound(callback_url)


def test_get_callback_with_redirect(make_client, stub_service) -> None:
    service = stub_service(synchronous=False)
    client = make_client(service)
    job = client.get(RANGESET_URL).json()
    _, callback_url = service.invocations[0]

    callback = client.get(_callback_path(callback_url), params={"redirect": "http://example.com/out.nc"})

    assert callback.status_code == 200
    status = client.get(f"/jobs/{job['jobID']}").json()
    assert status["status"] == "successful"
    assert status["progress"] == 100
    assert {"href": "http://example.com/out.nc", "rel": "data", "title": "Service result"} in status["links"]


def test_partial_callbacks_report_progress(make_client, stub_service) -> None:
    service = stub_service(synchronous=False, callback_contract="multi_part")
    client = make_client(service)
    job = client.get(RANGESET_URL).json()
    _, callback_url = service.invocations[0]

    client.post(_callback_path(callback_url), params={"partial": "true", "progress": "25"})

    status = client.get(f"/jobs/{job['jobID']}").json()
    assert status["status"] == "dispatched"
    assert status["progress"] == 25


def test_unknown_token_is_rejected(make_client, stub_service) -> None:
    client = make_client(stub_service())

    response = client.post("/service/00000000-0000-0000-0000-000000000000", params={"error": "x"})

    assert response.status_code == 500
    detail = response.json()["detail"]
    assert detail["code"] == "CallbackNotFound"
    assert detail["description"].endswith(": not found")


def test_duplicate_callback_is_rejected(make_client, stub_service) -> None:
    service = stub_service(synchronous=False)
    client = make_client(service)
    client.get(RANGESET_URL)
    _, callback_url = service.invocations[0]

    first = client.post(_callback_path(callback_url), params={"error": "bad input"})
    second = client.post(_callback_path(callback_url), params={"error": "bad input"})

    assert first.status_code == 200
    assert second.status_code == 500
    assert second.json()["detail"]["description"].endswith(": already consumed")


def test_waiting_request_does_not_starve_callbacks(make_client, stub_service, registry) -> None:
    clients = []
    callers = []

    def respond(service, operation, callback_url):
        caller = threading.Thread(
            target=lambda: clients[0].post(_callback_path(callback_url), params={"redirect": "http://example.com"})
        )
        callers.append(caller)
        caller.start()

    client = make_client(stub_service(respond))
    clients.append(client)

    async def limit_worker_threads() -> None:
        anyio.to_thread.current_default_thread_limiter().total_tokens = 1

    with client:
        client.portal.call(limit_worker_threads)
        response = client.get(RANGESET_URL, follow_redirects=False)
        callers[0].join(timeout=5)

    assert response.status_code == 302
    assert response.headers["location"] == "http://example.com"
    assert len(registry) == 0
