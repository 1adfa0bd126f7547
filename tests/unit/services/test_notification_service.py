import pytest

from app.services.notification_service import EmailNotificationService


@pytest.fixture
def smtp_settings(settings):
    settings.SMTP_HOST = "smtp.example.com"
    settings.SMTP_USERNAME = "sync@example.com"
    settings.SMTP_PASSWORD = "pw"
    settings.NOTIFICATION_EMAILS = ["ops@example.com"]
    return settings


@pytest.mark.asyncio
async def test_skips_when_smtp_not_configured(settings, mocker):
    service = EmailNotificationService(settings)
    send = mocker.patch.object(service, "_send_sync")

    assert await service.send_email("a@example.com", "Subject", "Body") is False
    send.assert_not_called()


@pytest.mark.asyncio
async def test_sends_to_explicit_recipient(smtp_settings, mocker):
    service = EmailNotificationService(smtp_settings)
    send = mocker.patch.object(service, "_send_sync")

    assert await service.send_email("a@example.com", "New Product Created", "Body") is True

    message = send.call_args.args[0]
    assert message["To"] == "a@example.com"
    assert message["Subject"] == "New Product Created"
    assert message["From"] == "Storefront Sync <sync@example.com>"


@pytest.mark.asyncio
async def test_falls_back_to_notification_emails(smtp_settings, mocker):
    service = EmailNotificationService(smtp_settings)
    send = mocker.patch.object(service, "_send_sync")

    await service.send_email(None, "Subject", "Body")

    assert send.call_args.args[0]["To"] == "ops@example.com"


@pytest.mark.asyncio
async def test_delivery_errors_propagate(smtp_settings, mocker):
    service = EmailNotificationService(smtp_settings)
    mocker.patch.object(service, "_send_sync", side_effect=OSError("connection refused"))

    with pytest.raises(OSError):
        await service.send_email("a@example.com", "Subject", "Body")
