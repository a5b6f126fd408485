"""Tests for the face-matching oracle adapter and fast check-in scans."""
from types import SimpleNamespace

import pytest

from guestlist.config import settings
from guestlist.errors import OracleUnavailable, ValidationError
from guestlist.models.attendee import AttendeeStatus
from guestlist.services import attendee_service, matching_service
from guestlist.services.matching_service import (
    OpenAIVisionOracle,
    ScanRegistry,
    ScanSession,
    find_match,
    parse_answer,
)
from tests.conftest import (
    PHOTO,
    api_create_event,
    api_create_sector,
    api_register,
    create_test_event,
    create_test_sector,
    register_test_attendee,
)

IDS = ["a1", "a2", "a3"]


def _candidates(n):
    return [(f"a{i}", f"/photos/a{i}.jpg") for i in range(1, n + 1)]


def _load_all(url):
    return b"jpeg-bytes"


class TestParseAnswer:
    @pytest.mark.parametrize("answer,expected", [
        ("C2", "a2"),
        (" c1 ", "a1"),
        ("The match is C3.", "a3"),
        ("NO_MATCH", None),
        ("no match", None),
    ])
    def test_readable_answers(self, answer, expected):
        assert parse_answer(answer, IDS) == expected

    @pytest.mark.parametrize("answer", ["", "maybe", "C4", "C0"])
    def test_unreadable_answers(self, answer):
        with pytest.raises(OracleUnavailable):
            parse_answer(answer, IDS)


class TestFindMatch:
    def test_batches_stop_at_first_match(self, oracle, monkeypatch):
        monkeypatch.setattr(settings, "MATCH_BATCH_SIZE", 2)
        oracle.targets = {"a4"}
        session = ScanSession(b"live")

        assert find_match(oracle, session, _candidates(7), loader=_load_all) == "a4"
        assert oracle.calls == [["a1", "a2"], ["a3", "a4"]]
        assert session.oracle_calls == 2

    def test_no_match_visits_every_batch(self, oracle):
        session = ScanSession(b"live")
        assert find_match(oracle, session, _candidates(5), batch_size=2, loader=_load_all) is None
        assert oracle.calls == [["a1", "a2"], ["a3", "a4"], ["a5"]]

    def test_candidates_without_photo_are_skipped(self, oracle):
        oracle.targets = {"a3"}
        session = ScanSession(b"live")
        loader = lambda url: None if url.endswith(("a1.jpg", "a2.jpg")) else b"jpeg"

        assert find_match(oracle, session, _candidates(3), batch_size=2, loader=loader) == "a3"
        assert oracle.calls == [["a3"]]

    def test_cancel_stops_further_calls_and_releases(self, oracle):
        session = ScanSession(b"live")
        oracle.on_call = lambda n: session.cancel()

        assert find_match(oracle, session, _candidates(6), batch_size=2, loader=_load_all) is None
        assert len(oracle.calls) == 1
        assert session.cancelled
        assert session.released
        assert session.capture is None

    def test_cancelled_before_start(self, oracle):
        session = ScanSession(b"live")
        session.cancel()
        assert find_match(oracle, session, _candidates(3), loader=_load_all) is None
        assert oracle.calls == []

    def test_oracle_failure_halts_the_scan(self, oracle):
        oracle.fail = True
        session = ScanSession(b"live")
        with pytest.raises(OracleUnavailable):
            find_match(oracle, session, _candidates(6), batch_size=2, loader=_load_all)
        assert len(oracle.calls) == 1


class TestScanSession:
    def test_release_runs_callback_once(self):
        released = []
        session = ScanSession(b"live", on_release=lambda: released.append(True))
        with session:
            assert not session.released
        session.release()
        assert released == [True]

    def test_registry(self):
        registry = ScanRegistry()
        session = registry.start(b"live", scan_id="scan-1")
        assert registry.active() == ["scan-1"]
        assert registry.cancel("scan-1") is True
        assert session.cancelled
        registry.finish("scan-1")
        assert registry.active() == []

    def test_cancel_before_start_makes_no_oracle_call(self, oracle):
        registry = ScanRegistry()
        assert registry.cancel("scan-1") is False

        session = registry.start(b"live", scan_id="scan-1")
        assert session.cancelled
        assert session.released
        assert find_match(oracle, session, _candidates(2), batch_size=1, loader=_load_all) is None
        assert oracle.calls == []

    def test_early_cancel_applies_once(self):
        registry = ScanRegistry()
        registry.cancel("scan-1")
        registry.finish(registry.start(b"live", scan_id="scan-1").scan_id)
        assert not registry.start(b"live", scan_id="scan-1").cancelled

    def test_running_scan_id_cannot_be_reused(self):
        registry = ScanRegistry()
        first = registry.start(b"live", scan_id="scan-1")
        with pytest.raises(ValidationError) as exc:
            registry.start(b"other", scan_id="scan-1")
        assert exc.value.field == "scan_id"
        assert registry.cancel("scan-1") is True
        assert first.cancelled


class TestOpenAIVisionOracle:
    def _client(self, content=None, error=None):
        calls = []

        def create(**kwargs):
            calls.append(kwargs)
            if error is not None:
                raise error
            return SimpleNamespace(choices=[SimpleNamespace(message=SimpleNamespace(content=content))])

        client = SimpleNamespace(chat=SimpleNamespace(completions=SimpleNamespace(create=create)))
        return client, calls

    def test_labels_candidates_and_parses_answer(self):
        client, calls = self._client("C2")
        oracle = OpenAIVisionOracle(api_key="sk-test", model="vision-test", client=client)

        assert oracle.match(b"live", [("a1", b"one"), ("a2", b"two")]) == "a2"
        request = calls[0]
        assert request["model"] == "vision-test"
        assert request["temperature"] == 0
        content = request["messages"][1]["content"]
        images = [part for part in content if part["type"] == "image_url"]
        assert len(images) == 3
        assert images[0]["image_url"]["url"].startswith("data:image/jpeg;base64,")
        assert [p["text"] for p in content if p["type"] == "text"] == ["LIVE photo:", "Candidate C1:", "Candidate C2:"]

    def test_no_match(self):
        client, _ = self._client("NO_MATCH")
        oracle = OpenAIVisionOracle(api_key="sk-test", client=client)
        assert oracle.match(b"live", [("a1", b"one")]) is None

    def test_call_failure_is_oracle_unavailable(self):
        client, _ = self._client(error=RuntimeError("timeout"))
        oracle = OpenAIVisionOracle(api_key="sk-test", client=client)
        with pytest.raises(OracleUnavailable) as exc:
            oracle.match(b"live", [("a1", b"one")])
        assert "timeout" in exc.value.reason

    def test_missing_key(self):
        oracle = OpenAIVisionOracle(api_key="")
        with pytest.raises(OracleUnavailable):
            oracle.match(b"live", [("a1", b"one")])
        assert oracle.match(b"live", []) is None


class TestFastCheckin:
    @pytest.fixture
    def crowd(self, db, ctx):
        event = create_test_event(db)
        vip = create_test_sector(db, event.event_id)
        people = [
            register_test_attendee(db, event.event_id, ctx, [vip.sector_id], cpf=f"{i:011d}", name=f"Guest {i}")
            for i in range(1, 4)
        ]
        return event, vip, people

    def test_match_and_check_in(self, db, ctx, oracle, crowd):
        event, vip, people = crowd
        attendee_service.check_in(db, event.event_id, people[0].attendee_id, {}, ctx)
        oracle.targets = {people[2].attendee_id}

        result = matching_service.fast_checkin(
            db, event.event_id, PHOTO, ctx, oracle, check_in=True, wristbands={vip.sector_id: "W9"}
        )
        assert result["matched"] is True
        assert result["attendee"].attendee_id == people[2].attendee_id
        assert result["attendee"].status == AttendeeStatus.checked_in
        assert result["attendee"].wristbands == {vip.sector_id: "W9"}
        assert people[0].attendee_id not in sum(oracle.calls, [])
        assert matching_service.scan_registry.active() == []

    def test_match_without_check_in(self, db, ctx, oracle, crowd):
        event, _, people = crowd
        oracle.targets = {people[1].attendee_id}
        result = matching_service.fast_checkin(db, event.event_id, PHOTO, ctx, oracle)
        assert result["matched"] is True
        assert result["attendee"].status == AttendeeStatus.pending

    def test_no_match(self, db, ctx, oracle, crowd):
        event, _, _ = crowd
        result = matching_service.fast_checkin(db, event.event_id, PHOTO, ctx, oracle)
        assert (result["matched"], result["cancelled"], result["attendee"]) == (False, False, None)

    def test_result_after_cancel_is_discarded(self, db, ctx, oracle, crowd):
        """The oracle answers a match, but the scan was cancelled meanwhile."""
        event, _, people = crowd
        oracle.targets = {people[0].attendee_id}
        oracle.on_call = lambda n: matching_service.scan_registry.cancel("scan-1")

        result = matching_service.fast_checkin(db, event.event_id, PHOTO, ctx, oracle, check_in=True,
                                               scan_id="scan-1")
        assert result["cancelled"] is True
        assert result["matched"] is False
        db.refresh(people[0])
        assert people[0].status == AttendeeStatus.pending

    def test_cancel_sent_before_the_scan_starts(self, db, ctx, oracle, crowd):
        event, _, people = crowd
        oracle.targets = {people[0].attendee_id}
        registry = ScanRegistry()
        registry.cancel("scan-early")

        result = matching_service.fast_checkin(db, event.event_id, PHOTO, ctx, oracle, check_in=True,
                                               scan_id="scan-early", registry=registry)
        assert (result["cancelled"], result["matched"]) == (True, False)
        assert oracle.calls == []
        assert registry.active() == []

    def test_verify_identity(self, db, oracle, crowd):
        event, _, people = crowd
        oracle.targets = {people[0].attendee_id}
        assert matching_service.verify_identity(db, event.event_id, people[0].attendee_id, PHOTO, oracle) is True
        assert matching_service.verify_identity(db, event.event_id, people[1].attendee_id, PHOTO, oracle) is False


class TestFastCheckinApi:
    def test_scan_checks_in(self, client, oracle):
        event = api_create_event(client)
        vip = api_create_sector(client, event["event_id"])
        ana = api_register(client, event["event_id"], [vip["sector_id"]])
        oracle.targets = {ana["attendee_id"]}

        resp = client.post(f"/api/events/{event['event_id']}/fast-checkin/", json={
            "live_photo": PHOTO,
            "check_in": True,
            "wristbands": {vip["sector_id"]: "W1"},
        })
        assert resp.status_code == 200, resp.text
        body = resp.json()
        assert body["matched"] is True
        assert body["attendee"]["status"] == "CHECKED_IN"
        assert body["attendee"]["wristbands"] == {vip["sector_id"]: "W1"}

    def test_oracle_down_is_503(self, client, oracle):
        event = api_create_event(client)
        vip = api_create_sector(client, event["event_id"])
        api_register(client, event["event_id"], [vip["sector_id"]])
        oracle.fail = True

        resp = client.post(f"/api/events/{event['event_id']}/fast-checkin/", json={"live_photo": PHOTO})
        assert resp.status_code == 503
        assert resp.json()["error"] == "oracle_unavailable"

    def test_cancel_before_scan_arrives(self, client, oracle):
        event = api_create_event(client)
        vip = api_create_sector(client, event["event_id"])
        api_register(client, event["event_id"], [vip["sector_id"]])

        resp = client.delete(f"/api/events/{event['event_id']}/fast-checkin/door-1-early")
        assert resp.status_code == 202
        assert resp.json() == {"scan_id": "door-1-early", "cancelled": True, "running": False}

        resp = client.post(f"/api/events/{event['event_id']}/fast-checkin/",
                           json={"live_photo": PHOTO, "scan_id": "door-1-early"})
        assert resp.status_code == 200, resp.text
        assert resp.json()["cancelled"] is True
        assert oracle.calls == []

    def test_verify(self, client, oracle):
        event = api_create_event(client)
        vip = api_create_sector(client, event["event_id"])
        ana = api_register(client, event["event_id"], [vip["sector_id"]])
        oracle.targets = {ana["attendee_id"]}

        resp = client.post(
            f"/api/events/{event['event_id']}/attendees/{ana['attendee_id']}/verify",
            json={"live_photo": PHOTO},
        )
        assert resp.status_code == 200, resp.text
        assert resp.json() == {"attendee_id": ana["attendee_id"], "verified": True}
