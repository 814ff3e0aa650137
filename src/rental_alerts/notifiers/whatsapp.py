"""WhatsApp notification delivery through an HTTP bridge."""

from typing import Any, Final

import httpx

from rental_alerts.logging import get_logger
from rental_alerts.models import Listing

logger = get_logger(__name__)

_SEND_PATH: Final = "/api/send"
_DEFAULT_TIMEOUT: Final = 15.0


def format_brl(value: float | None) -> str:
    """Format an amount the way pt-BR locales print it (``1.234,5``).

    Whole amounts have no decimal part; missing amounts render as ``N/A``.
    """
    if value is None:
        return "N/A"
    text = f"{value:,.0f}" if float(value).is_integer() else f"{value:,.2f}"
    return text.replace(",", "\x00").replace(".", ",").replace("\x00", ".")


def format_listing_message(listing: Listing) -> str:
    """Render the WhatsApp message announcing a matching listing.

    WhatsApp markup: ``*bold*``.
    """
    address = listing.full_address or "Não informado"
    lines = [
        "🎉 *Vigia Imóveis encontrou!* 🎉",
        "",
        "Um novo imóvel que corresponde à sua busca acabou de ser anunciado:",
        "",
        f"📍 *Endereço:* {address}",
        f"💰 *Aluguel:* R$ {format_brl(listing.rent)}",
        f"🏢 *Condomínio:* R$ {format_brl(listing.condo_fee)}",
        "",
        "Clique aqui para ver todos os detalhes e fotos:",
        str(listing.url),
    ]
    return "\n".join(lines)


class WhatsAppNotifier:
    """Send text messages via the WhatsApp bridge service."""

    def __init__(
        self,
        *,
        bridge_url: str,
        timeout: float = _DEFAULT_TIMEOUT,
        client: httpx.AsyncClient | None = None,
    ) -> None:
        """Initialize the notifier.

        Args:
            bridge_url: Base URL of the bridge. Empty disables delivery.
            timeout: Per-request timeout in seconds.
            client: Shared HTTP client (optional; one is created on demand).
        """
        self.bridge_url = bridge_url.rstrip("/")
        self.timeout = timeout
        self._client = client
        self._owns_client = client is None
        if not self.bridge_url:
            logger.warning("whatsapp_bridge_not_configured")

    def _get_client(self) -> httpx.AsyncClient:
        if self._client is None:
            self._client = httpx.AsyncClient(timeout=self.timeout)
        return self._client

    async def send_message(self, recipient: str, message: str) -> bool:
        """Send a message and report whether the bridge acknowledged it.

        Args:
            recipient: Phone number in international format without ``+``.
            message: Message text.

        Returns:
            True only if the bridge answered ``{"success": true}``.
        """
        if not self.bridge_url:
            return False

        try:
            resp = await self._get_client().post(
                f"{self.bridge_url}{_SEND_PATH}",
                json={"recipient": recipient, "message": message},
            )
            body = resp.json()
        except httpx.HTTPError as e:
            logger.error("whatsapp_bridge_unreachable", recipient=recipient, error=str(e))
            return False
        except ValueError:
            logger.error(
                "whatsapp_bridge_invalid_response",
                recipient=recipient,
                status=resp.status_code,
            )
            return False

        data: dict[str, Any] = body if isinstance(body, dict) else {}
        if data.get("success") is True:
            logger.info("whatsapp_message_sent", recipient=recipient)
            return True

        logger.error(
            "whatsapp_bridge_rejected",
            recipient=recipient,
            status=resp.status_code,
            bridge_message=data.get("message") or "unknown error",
        )
        return False

    async def close(self) -> None:
        """Close the HTTP client if this notifier created it."""
        if self._client is not None and self._owns_client:
            await self._client.aclose()
            self._client = None
