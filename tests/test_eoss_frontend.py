COLLECTION = "C1234088182-EEDTEST"
GRANULE = "G1233800343-EEDTEST"
ITEM_URL = f"/{COLLECTION}/eoss/0.1.0/items/{GRANULE}"


def test_landing_page(make_client, stub_service) -> None:
    client = make_client(stub_service())

    response = client.get(f"/{COLLECTION}/eoss/0.1.0/")

    assert response.status_code == 200
    assert response.headers["content-type"].startswith("text/html")


def test_get_granule_builds_operation(make_client, stub_service, callback_with) -> None:
    service = stub_service(callback_with(params={"redirect": "http://example.com"}))
    client = make_client(service)

    response = client.get(
        ITEM_URL,
        params={
            "rangeSubset": "red_var,green_var",
            "bbox": "-130,-45,130,45",
            "crs": "EPSG:4326",
            "format": "image/png",
        },
        follow_redirects=False,
    )

    assert response.status_code == 302
    assert response.headers["location"] == "http://example.com"
    operation, _ = service.invocations[0]
    assert operation.granule_ids == [GRANULE]
    assert operation.bounding_rectangle == [-130.0, -45.0, 130.0, 45.0]
    assert operation.crs == "EPSG:4326"
    assert operation.output_format == "image/png"
    assert operation.require_synchronous is True
    assert [v.name for v in operation.sources[0].variables] == ["red_var", "green_var"]


def test_get_granule_keeps_unrecognized_crs(make_client, stub_service, callback_with) -> None:
    service = stub_service(callback_with(body=b"data"))
    client = make_client(service)

    client.get(ITEM_URL, params={"crs": "+proj=longlat"})

    operation, _ = service.invocations[0]
    assert operation.crs == "+proj=longlat"
    assert operation.srs is None


def test_get_granule_without_rangesubset_requests_all_variables(make_client, stub_service, callback_with) -> None:
    service = stub_service(callback_with(body=b"data"))
    client = make_client(service)

    client.get(ITEM_URL)

    operation, _ = service.invocations[0]
    assert operation.collection_ids == [COLLECTION]
    assert operation.sources[0].variables == []


def test_get_granule_unknown_variable(make_client, stub_service) -> None:
    service = stub_service()
    client = make_client(service)

    response = client.get(ITEM_URL, params={"rangeSubset": "red_var,purple_var"})

    assert response.status_code == 400
    assert response.json()["detail"]["description"] == "Invalid rangeSubset parameter: purple_var"
    assert service.invocations == []


def test_get_granule_rejects_malformed_granule_id(make_client, stub_service) -> None:
    client = make_client(stub_service())

    response = client.get(f"/{COLLECTION}/eoss/0.1.0/items/not-a-granule")

    assert response.status_code == 400


def test_get_granule_unsupported_collection(make_client, stub_service) -> None:
    client = make_client(stub_service(collections=["C1215669046-GES_DISC"]))

    response = client.get(ITEM_URL)

    assert response.status_code == 404
    assert "via EOSS" in response.json()["detail"]["description"]
