import smtplib
from datetime import datetime

import pytest

from tutorconnect.core import config
from tutorconnect.services import email_service


class FakeSmtp:
    sent = []

    def __init__(self, host, port):
        self.host = host
        self.port = port

    def __enter__(self):
        return self

    def __exit__(self, *_exc):
        return False

    def starttls(self):
        pass

    def login(self, user, password):
        pass

    def send_message(self, message):
        FakeSmtp.sent.append(message)


def test_build_completion_email_mentions_counterpart_and_chat(monkeypatch: pytest.MonkeyPatch) -> None:
    monkeypatch.setattr(config, 'APP_BASE_URL', 'https://tutorconnect.no')

    subject, body = email_service.build_appointment_completion_email(
        'Kari', 'Per', datetime(2024, 3, 5, 17, 0), 90, 'Matematikk', 42,
    )

    assert subject == 'Bekreft gjennomført time med Per'
    assert 'Tid: 17:00 - 18:30 (Fag: Matematikk)' in body
    assert 'https://tutorconnect.no/chat?id=42' in body


def test_send_email_is_skipped_when_smtp_disabled(monkeypatch: pytest.MonkeyPatch) -> None:
    monkeypatch.setattr(config, 'SMTP_ENABLED', False)

    assert email_service.send_email('kari@example.no', 'Emne', 'Tekst') is False


def test_send_email_uses_smtp_when_enabled(monkeypatch: pytest.MonkeyPatch) -> None:
    FakeSmtp.sent = []
    monkeypatch.setattr(config, 'SMTP_ENABLED', True)
    monkeypatch.setattr(config, 'SMTP_PORT', 587)
    monkeypatch.setattr(email_service.smtplib, 'SMTP', FakeSmtp)

    assert email_service.send_email('kari@example.no', 'Emne', 'Tekst') is True
    assert FakeSmtp.sent[0]['To'] == 'kari@example.no'


def test_send_email_reports_smtp_failure(monkeypatch: pytest.MonkeyPatch) -> None:
    class BrokenSmtp(FakeSmtp):
        def send_message(self, message):
            raise smtplib.SMTPException('rejected')

    monkeypatch.setattr(config, 'SMTP_ENABLED', True)
    monkeypatch.setattr(config, 'SMTP_PORT', 587)
    monkeypatch.setattr(email_service.smtplib, 'SMTP', BrokenSmtp)

    assert email_service.send_email('kari@example.no', 'Emne', 'Tekst') is False

