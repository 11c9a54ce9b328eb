"""Table inventory management for staff."""

import logging

from table_ordering_service.models.menu_models import RestaurantTable, TableStatusEnum
from table_ordering_service.repositories.ordering_repositories import TableRepository
from table_ordering_service.services.errors import NotFoundError, PersistenceError, ValidationError
from table_ordering_service.services.qr_code_client import QRCodeClient

logger = logging.getLogger(__name__)


def next_table_number(tables: list[RestaurantTable]) -> int:
    """max(existing numbers) + 1; gaps left by removed tables are never reused."""
    return max((t.table_number for t in tables), default=0) + 1


class TableService:
    """Service for adding, removing and releasing tables."""

    def __init__(self, table_repository: TableRepository, qr_client: QRCodeClient | None = None) -> None:
        """Initialize the TableService.

        Args:
            table_repository: Repository for tables
            qr_client: Client for printable QR codes
        """
        self.table_repository = table_repository
        self.qr_client = qr_client

    async def list_tables(self) -> list[RestaurantTable]:
        return self.table_repository.list_tables()

    async def get_table(self, table_number: int) -> RestaurantTable:
        """Get a table by number.

        Raises:
            NotFoundError: If the table does not exist
        """
        table = self.table_repository.get_table(table_number)
        if table is None:
            raise NotFoundError(f"Table {table_number} not found")
        return table

    async def add_table(self, seats: int | None = None) -> RestaurantTable:
        """Create the next table after the highest existing number.

        Raises:
            ValidationError: If seats is less than 1
            PersistenceError: If the insert failed
        """
        if seats is not None and seats < 1:
            raise ValidationError("A table needs at least one seat")

        tables = self.table_repository.list_tables()
        table = RestaurantTable(
            id=max((t.id for t in tables), default=0) + 1,
            table_number=next_table_number(tables),
            seats=seats,
            status=TableStatusEnum.AVAILABLE,
        )

        if not self.table_repository.create_table(table):
            raise PersistenceError(f"Could not add table {table.table_number}")

        logger.info(f"Added table {table.table_number}")
        return table

    async def remove_table(self, table_number: int) -> None:
        """Delete a table without renumbering the others.

        Raises:
            NotFoundError: If the table does not exist
            PersistenceError: If the delete failed
        """
        await self.get_table(table_number)
        if not self.table_repository.delete_table(table_number):
            raise PersistenceError(f"Could not remove table {table_number}")
        logger.info(f"Removed table {table_number}")

    async def release_table(self, table_number: int) -> RestaurantTable:
        """Clear a table's occupancy regardless of its order's status.

        Raises:
            NotFoundError: If the table does not exist
            PersistenceError: If the update failed
        """
        table = await self.get_table(table_number)
        if not self.table_repository.update_table(
            table_number, {"status": TableStatusEnum.AVAILABLE, "current_order_id": None}
        ):
            raise PersistenceError(f"Could not release table {table_number}")

        logger.info(f"Released table {table_number} (was {table.current_order_id})")
        return table.model_copy(
            update={"status": TableStatusEnum.AVAILABLE, "current_order_id": None}
        )

    async def set_status(self, table_number: int, status: TableStatusEnum) -> RestaurantTable:
        """Set a table's occupancy status, e.g. to mark guests seated.

        Raises:
            NotFoundError: If the table does not exist
            PersistenceError: If the update failed
        """
        table = await self.get_table(table_number)
        fields: dict[str, object] = {"status": status}
        if status == TableStatusEnum.AVAILABLE:
            fields["current_order_id"] = None

        if not self.table_repository.update_table(table_number, fields):
            raise PersistenceError(f"Could not update table {table_number}")
        return table.model_copy(update=fields)

    def table_link(self, table_number: int) -> str:
        if self.qr_client is None:
            raise ValidationError("QR codes are not configured")
        return self.qr_client.table_link(table_number)

    async def get_qr_image(self, table_number: int) -> bytes:
        """PNG image encoding the table's ordering link.

        Raises:
            NotFoundError: If the table does not exist
            ValidationError: If QR codes are not configured
            PersistenceError: If the image service failed
        """
        await self.get_table(table_number)
        if self.qr_client is None:
            raise ValidationError("QR codes are not configured")

        image = await self.qr_client.get_qr_image(table_number)
        if image is None:
            raise PersistenceError(f"Could not generate QR code for table {table_number}")
        return image
