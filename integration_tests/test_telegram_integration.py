import time

import pytest

from chatnotify.dispatcher import build_dispatcher


@pytest.mark.integration
def test_send_message_to_main_group(live_config):
    with build_dispatcher(live_config) as dispatcher:
        outcome = dispatcher.send_to_main_group(
            f"chatnotify integration test ping {int(time.time())}", severity="INFO"
        )

    assert outcome.success, outcome.error_detail


@pytest.mark.integration
def test_send_document_to_main_group(live_config, tmp_path):
    report = tmp_path / "integration-report.txt"
    report.write_text("chatnotify integration report\n", encoding="utf-8")

    with build_dispatcher(live_config) as dispatcher:
        outcome = dispatcher.send_document("main", report, caption="integration <report>")

    assert outcome.success, outcome.error_detail
