import socket
import time

import pytest

from notifications import MailNotConfigured, Notifier, SmtpMailer


@pytest.fixture
def silent_smtp_server():
    # Accepts connections into the backlog but never sends the SMTP greeting
    server = socket.socket(socket.AF_INET, socket.SOCK_STREAM)
    server.bind(("127.0.0.1", 0))
    server.listen(5)
    yield server.getsockname()[1]
    server.close()


def test_unresponsive_smtp_server_times_out(settings, silent_smtp_server):
    stalled = settings.model_copy(update={
        "smtp_host": "127.0.0.1",
        "smtp_port": silent_smtp_server,
        "smtp_user": "mailer",
        "smtp_pass": "secret",
        "smtp_timeout_seconds": 0.3,
    })
    notifier = Notifier(SmtpMailer(stalled), stalled)

    started = time.monotonic()
    delivered = notifier.password_reset("ana@example.com", "abc123")

    assert delivered is False
    assert time.monotonic() - started < 5


def test_unconfigured_smtp_refuses_to_send(settings):
    with pytest.raises(MailNotConfigured):
        SmtpMailer(settings).send("ana@example.com", "Hi", "<p>Hi</p>")
