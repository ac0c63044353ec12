import threading

from conftest import FakeOtpChannel
from reward_program.services import notifications


def test_welcome_message_mentions_shop_code():
    assert "AB12CD" in notifications.welcome_message("Fahad", "AB12CD")
    assert "shop code" not in notifications.welcome_message("Omar")


def test_send_welcome_message_uses_channel():
    channel = FakeOtpChannel()
    notifications.send_welcome_message(channel, "0500000001", "Fahad", "AB12CD")
    assert channel.messages == [("0500000001", notifications.welcome_message("Fahad", "AB12CD"))]


def test_failing_job_is_logged_and_discarded(caplog):
    def boom():
        raise RuntimeError("provider down")

    notifications._run_quietly(boom)
    assert "boom" in caplog.text


def test_dispatch_runs_in_background():
    done = threading.Event()
    received = []

    def job(value):
        received.append(value)
        done.set()

    try:
        notifications.dispatch(job, 42)
        assert done.wait(timeout=5)
        assert received == [42]
    finally:
        notifications.shutdown_scheduler()
