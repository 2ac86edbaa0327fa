import random

from blog_analytics.telemetry_utils import utcnow
from conftest import API


def _bulk(client, events):
    return client.post(f"{API}/bulk", json={"events": events})


def test_partial_success_is_reported(client, repository):
    res = _bulk(client, [{"sessionId": "s1", "eventName": "click"}, {"eventName": "click"}])
    assert res.status_code == 200
    body = res.json()
    assert body["success"] is True
    assert body["savedCount"] == 1
    assert body["failedCount"] == 1
    assert len(body["errors"]) == 1
    assert body["errors"][0].startswith("Event 1:")
    assert "missing sessionId" in body["errors"][0]
    assert repository.count() == 1


def test_exactly_the_valid_events_are_persisted(client, repository):
    valid = [{"sessionId": f"s{i}", "page": f"/p{i}", "type": "pageview"} for i in range(7)]
    invalid = [{"page": "/orphan"}, {"sessionId": "s9"}, "not-an-object"]
    events = valid + invalid
    random.Random(7).shuffle(events)

    res = _bulk(client, events)
    body = res.json()
    assert body["savedCount"] == 7
    assert body["failedCount"] == 3
    assert len(body["errors"]) == 3
    assert repository.count() == 7

    bad_positions = sorted(i for i, e in enumerate(events) if e in invalid)
    reported = sorted(int(err.split(":")[0].split()[1]) for err in body["errors"])
    assert reported == bad_positions


def test_bulk_index_is_recorded(client, repository):
    _bulk(client, [{"sessionId": "a", "eventName": "x"}, {"sessionId": "b", "eventName": "y"}])
    stored = repository.by_session("b")
    assert stored[0].meta["bulkIndex"] == 1
    assert stored[0].meta["source"] == "bulk-upload"


def test_too_many_events_rejects_whole_request(client, repository):
    events = [{"sessionId": "s1", "eventName": "click"}] * 1001
    res = _bulk(client, events)
    assert res.status_code == 400
    assert res.json()["message"].startswith("Too many events")
    assert res.json()["received"] == 1001
    assert repository.count() == 0


def test_all_invalid_is_a_client_error(client, repository):
    res = _bulk(client, [{"page": "/a"}, {"page": "/b"}])
    assert res.status_code == 400
    body = res.json()
    assert body["message"] == "All events failed validation"
    assert len(body["errors"]) == 2
    assert repository.count() == 0


def test_events_must_be_a_list(client):
    for payload in ({}, {"events": "nope"}, {"events": {"sessionId": "s1"}}):
        res = client.post(f"{API}/bulk", json=payload)
        assert res.status_code == 400
        assert res.json()["message"] == "Missing or invalid events array"


def test_empty_list_saves_nothing(client, repository):
    res = _bulk(client, [])
    assert res.status_code == 200
    assert res.json()["savedCount"] == 0
    assert res.json()["failedCount"] == 0
    assert "errors" not in res.json()


def _row(event_id, session_id):
    return {"id": event_id, "kind": "click", "session_id": session_id, "meta": {}, "ts": utcnow()}


def test_store_rejection_costs_only_the_bad_row(repository):
    existing = repository.append(_row(None, "s0"))

    result = repository.append_many([_row(None, "s1"), _row(existing, "dup"), _row(None, "s2")])

    assert len(result.saved_ids) == 2
    assert list(result.failures) == [1]
    assert repository.count() == 3
    assert repository.by_session("dup") == []
