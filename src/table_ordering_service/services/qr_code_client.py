"""Client for the QR image service used on printable table cards."""

import logging

import httpx

logger = logging.getLogger(__name__)

DEFAULT_QR_SERVICE_URL = "https://api.qrserver.com/v1/create-qr-code/"


class QRCodeClient:
    """Builds per-table deep links and fetches their QR images."""

    def __init__(
        self,
        public_base_url: str,
        qr_service_url: str = DEFAULT_QR_SERVICE_URL,
        size: int = 300,
    ) -> None:
        """Initialize the QR client.

        Args:
            public_base_url: Base URL of the customer ordering site
            qr_service_url: Image service endpoint taking size and data parameters
            size: Image edge length in pixels
        """
        self.public_base_url = public_base_url.rstrip("/")
        self.qr_service_url = qr_service_url
        self.size = size

    def table_link(self, table_number: int) -> str:
        """Deep link that opens the ordering chat for a table."""
        return f"{self.public_base_url}/order?table={table_number}"

    async def get_qr_image(self, table_number: int) -> bytes | None:
        """Fetch a PNG encoding the table's deep link.

        Returns:
            bytes if the image was fetched, None on failure
        """
        params = {"size": f"{self.size}x{self.size}", "data": self.table_link(table_number)}

        try:
            async with httpx.AsyncClient() as client:
                response = await client.get(self.qr_service_url, params=params)
                response.raise_for_status()
                return response.content

        except (httpx.HTTPStatusError, httpx.RequestError) as e:
            logger.error(f"Failed to fetch QR code for table {table_number}: {e}")  # pragma: no cover
            return None
