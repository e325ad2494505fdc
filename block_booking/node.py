from typing import Iterable, Optional, Type

from loguru import logger
from pydantic import ValidationError

from block_booking.block_booking_client import BlockBookingClient
from block_booking.errors import BlockBookingError, BlockBookingOperationError
from block_booking.models import (
    BookAppointmentParams,
    ExecutionRecord,
    GetAvailabilityParams,
    OperationParams,
)

OPERATIONS: dict[str, Type[OperationParams]] = {
    "bookAppointment": BookAppointmentParams,
    "getAvailability": GetAvailabilityParams,
}

UNEXPECTED_MESSAGES = {
    "bookAppointment": "An unexpected issue occurred while booking the appointment",
    "getAvailability": "An unexpected issue occurred while checking availability",
}


def _error_message(error: Exception, operation: str) -> str:
    if isinstance(error, BlockBookingError):
        return error.message
    return str(error) or UNEXPECTED_MESSAGES[operation]


class BlockBookingNode:
    """Runs a booking operation over a batch of input items.

    Items are processed one after another; each produces one record tagged
    with its index. With continue_on_fail a failing item yields an
    {"error": message} record instead of aborting the batch.
    """

    def __init__(self, client: BlockBookingClient, resource: str = "booking"):
        self.client = client
        self.resource = resource
        self.logger = logger

    async def execute(
        self,
        operation: str,
        items: Iterable[dict],
        continue_on_fail: bool = False,
    ) -> list[ExecutionRecord]:
        params_model = OPERATIONS.get(operation) if self.resource == "booking" else None
        if params_model is None:
            raise BlockBookingOperationError(
                f"Unknown operation: {operation} for resource: {self.resource}"
            )

        records = []
        for index, item in enumerate(items):
            try:
                params = params_model.model_validate(item)
                result = await self.client.run(params)
                records.append(ExecutionRecord.for_item(index, result.raw_response))
            except Exception as e:
                if continue_on_fail:
                    message = _error_message(e, operation)
                    self.logger.warning(f"Item {index} failed, continuing: {message}")
                    records.append(ExecutionRecord.for_item(index, {"error": message}))
                    continue
                if isinstance(e, BlockBookingError):
                    raise
                raise self._wrap_unexpected(e, operation) from e

        return records

    @staticmethod
    def _wrap_unexpected(error: Exception, operation: str) -> BlockBookingOperationError:
        description: Optional[str] = str(error) or None
        if isinstance(error, ValidationError):
            description = f"Invalid parameters: {error}"
        return BlockBookingOperationError(UNEXPECTED_MESSAGES[operation], description)
