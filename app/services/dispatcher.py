# app/services/dispatcher.py
import html
import logging

from app.errors import ConfigurationError, TransportError
from app.schemas.location import LocationReport
from app.services.mailer import DeliveryReceipt, NotificationTransport

logger = logging.getLogger(__name__)


def map_link(latitude: float, longitude: float, provider: str = "google.com") -> str:
    # repr() is the shortest round-trip form, so nothing gets rounded
    return f"https://maps.{provider}/?q={latitude!r},{longitude!r}"


def build_message(report: LocationReport, provider: str = "google.com") -> tuple[str, str]:
    url = report.map_url or map_link(report.latitude, report.longitude, provider)
    device = html.escape(report.device_id)

    subject = f"Location: {report.device_id}"
    body = (
        "<p><strong>New location received</strong></p>\n"
        f"<p>Device: {device}</p>\n"
        f"<p>Lat: {report.latitude!r}</p>\n"
        f"<p>Lon: {report.longitude!r}</p>\n"
        f'<p><a href="{html.escape(url, quote=True)}">Open map</a></p>\n'
    )
    return subject, body


class NotificationDispatcher:
    def __init__(self, transport: NotificationTransport | None, map_provider: str = "google.com") -> None:
        self.transport = transport
        self.map_provider = map_provider

    async def dispatch(self, report: LocationReport) -> DeliveryReceipt:
        if self.transport is None:
            raise ConfigurationError("email transport (RESEND_API_KEY or SMTP_HOST)")

        subject, body = build_message(report, self.map_provider)
        try:
            receipt = await self.transport.send_notification(report.recipient, subject, body)
        except TransportError as e:
            logger.warning(f"[MAIL] send failed device_id={report.device_id} detail={e.detail}")
            raise
        except Exception as e:
            logger.exception(f"[MAIL] transport crashed device_id={report.device_id}")
            raise TransportError(f"{type(e).__name__}: {e}") from e

        logger.info(
            f"[MAIL] sent via={receipt.transport} device_id={report.device_id} message_id={receipt.message_id}"
        )
        return receipt
