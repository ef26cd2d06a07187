import logging

import pytest

from chatnotify.config import GroupSettings, NotifyConfig
from chatnotify.delivery import DeliveryOutcome
from chatnotify.destinations import Destination, DestinationNotFound, DestinationRegistry
from chatnotify.dispatcher import MessageKind, NotificationRequest, build_dispatcher
from chatnotify.formatting import LogEvent

from conftest import FakeTransport


def test_dispatch_by_name_formats_and_delivers(make_dispatcher, fake_transport):
    dispatcher = make_dispatcher()

    outcome = dispatcher.dispatch_by_name("main", "build <failed>", severity="error")

    assert outcome.success
    call = fake_transport.calls[0]
    assert call["chat_id"] == "100"
    assert call["thread_id"] == 7
    assert call["payload"] == "<b>[ERROR]</b> build &lt;failed&gt;"


def test_dispatch_by_id_and_request_resolution(make_dispatcher, fake_transport):
    dispatcher = make_dispatcher()

    assert dispatcher.dispatch_by_id(200, "by id").success
    assert dispatcher.dispatch(NotificationRequest("error", body="by name")).success
    assert dispatcher.dispatch(NotificationRequest("300", body="by id string")).success

    assert [c["chat_id"] for c in fake_transport.calls] == ["200", "300", "300"]


def test_lookup_miss_propagates_not_found(make_dispatcher, fake_transport):
    dispatcher = make_dispatcher()

    with pytest.raises(DestinationNotFound):
        dispatcher.dispatch_by_name("nope", "x")
    with pytest.raises(DestinationNotFound):
        dispatcher.dispatch_by_id("999", "x")
    with pytest.raises(DestinationNotFound):
        dispatcher.dispatch(NotificationRequest("missing", body="x"))
    with pytest.raises(DestinationNotFound):
        dispatcher.submit(NotificationRequest("missing", body="x"))
    assert fake_transport.calls == []


def test_rate_limited_requests_are_dropped_and_logged(make_dispatcher, fake_transport, caplog):
    dispatcher = make_dispatcher(capacity=2)

    with caplog.at_level(logging.WARNING, logger="chatnotify.dispatcher"):
        outcomes = [dispatcher.send_to_main_group(f"m{i}") for i in range(3)]

    assert [o.success for o in outcomes] == [True, True, False]
    assert outcomes[2].reason == DeliveryOutcome.RATE_LIMITED
    assert len(fake_transport.calls) == 2
    assert any("main" in r.getMessage() and "rate_limited" in r.getMessage() for r in caplog.records)


def test_media_paths_are_rate_limited_too(make_dispatcher, fake_transport, tmp_path):
    photo = tmp_path / "p.png"
    photo.write_bytes(b"img")
    dispatcher = make_dispatcher(capacity=1)

    assert dispatcher.send_photo("main", photo, caption="<ok>").success
    denied = dispatcher.send_document("report", photo)

    assert denied.reason == DeliveryOutcome.RATE_LIMITED
    assert len(fake_transport.calls) == 1
    assert fake_transport.calls[0]["caption"] == "&lt;ok&gt;"


def test_broadcast_isolates_failures(make_dispatcher, caplog):
    transport = FakeTransport(failing={"200"})
    dispatcher = make_dispatcher(transport=transport)

    with caplog.at_level(logging.WARNING, logger="chatnotify.dispatcher"):
        results = dispatcher.broadcast_to_all_groups("x")

    assert [label for label, _ in results] == ["main", "report", "error"]
    assert [o.success for _, o in results] == [True, False, True]
    assert results[1][1].reason == DeliveryOutcome.TRANSPORT_FAILURE
    assert [c["chat_id"] for c in transport.calls] == ["100", "200", "300"]
    assert any("report" in r.getMessage() for r in caplog.records)


def test_broadcast_contains_unexpected_errors(make_dispatcher):
    class Broken(FakeTransport):
        def send_message(self, chat_id, text, **kwargs):
            if chat_id == "100":
                raise AssertionError("unexpected")
            super().send_message(chat_id, text, **kwargs)

    dispatcher = make_dispatcher(transport=Broken())
    results = dispatcher.broadcast_to_all_groups("x")

    assert len(results) == 3
    assert [o.success for _, o in results] == [False, True, True]


def test_broadcast_over_empty_registry_returns_nothing(make_dispatcher):
    dispatcher = make_dispatcher(registry_override=DestinationRegistry([]))
    assert dispatcher.broadcast_to_all_groups("x") == []


def test_broadcast_respects_rate_limit(make_dispatcher):
    dispatcher = make_dispatcher(capacity=2)
    results = dispatcher.broadcast_to_all_groups("x")
    assert [o.reason for _, o in results] == [None, None, DeliveryOutcome.RATE_LIMITED]


def test_log_event_body_is_rendered_as_event(make_dispatcher, fake_transport):
    dispatcher = make_dispatcher()
    event = LogEvent("ERROR", "app", 0, "boom & bust")

    dispatcher.dispatch(NotificationRequest(Destination("555"), body=event))

    call = fake_transport.calls[0]
    assert call["chat_id"] == "555"
    assert call["payload"].startswith("<b>[ERROR]</b> app")
    assert "<pre>boom &amp; bust</pre>" in call["payload"]


def test_submit_delivers_in_background(make_dispatcher, fake_transport):
    with make_dispatcher() as dispatcher:
        future = dispatcher.submit(NotificationRequest("report", body="async"))
        outcome = future.result(timeout=5)

    assert outcome.success
    assert fake_transport.texts == ["async"]


def test_photo_request_kind(make_dispatcher, fake_transport, tmp_path):
    doc = tmp_path / "d.txt"
    doc.write_text("x", encoding="utf-8")
    dispatcher = make_dispatcher()

    outcome = dispatcher.dispatch(NotificationRequest("error", MessageKind.DOCUMENT, body=doc))

    assert outcome.success
    assert fake_transport.calls[0]["op"] == "document"
    assert fake_transport.calls[0]["thread_id"] == 3


def test_build_dispatcher_requires_token_without_transport():
    with pytest.raises(ValueError):
        build_dispatcher(NotifyConfig(bot_token=None))
    with pytest.raises(ValueError):
        build_dispatcher(NotifyConfig(bot_token="t", bot_enabled=False))


def test_build_dispatcher_uses_config_groups(fake_transport):
    config = NotifyConfig(
        bot_token="t",
        main_group=GroupSettings("main", "-1", 9),
        rate_limit=1,
    )
    dispatcher = build_dispatcher(config, transport=fake_transport)

    assert dispatcher.send_to_main_group("hello").success
    assert dispatcher.send_to_main_group("again").reason == DeliveryOutcome.RATE_LIMITED
    assert fake_transport.calls[0]["thread_id"] == 9
    with pytest.raises(DestinationNotFound):
        dispatcher.send_to_report_group("nope")


def test_group_shortcuts_accept_severity(make_dispatcher, fake_transport):
    dispatcher = make_dispatcher()

    assert dispatcher.send_to_main_group("ping", severity="INFO").success
    assert dispatcher.send_to_report_group("daily", severity="notice").success
    assert dispatcher.send_to_error_group("boom").success

    assert fake_transport.texts == ["<b>[INFO]</b> ping", "<b>[NOTICE]</b> daily", "boom"]


def test_plain_string_kind_sends_media(make_dispatcher, fake_transport, tmp_path):
    photo = tmp_path / "p.png"
    photo.write_bytes(b"img")
    dispatcher = make_dispatcher()

    outcome = dispatcher.dispatch(NotificationRequest("main", kind="photo", body=str(photo)))

    assert outcome.success
    assert fake_transport.calls[0]["op"] == "photo"


def test_plain_string_kind_still_checks_the_file(make_dispatcher, fake_transport, tmp_path):
    dispatcher = make_dispatcher()

    outcome = dispatcher.dispatch(NotificationRequest("main", kind="document", body=str(tmp_path / "missing.pdf")))

    assert outcome.reason == DeliveryOutcome.PRECONDITION_FAILED
    assert fake_transport.calls == []


def test_unknown_kind_is_rejected():
    with pytest.raises(ValueError):
        NotificationRequest("main", kind="video", body="clip.mp4")
