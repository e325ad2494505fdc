import asyncio

from booking_server import BookingServer
from block_booking.block_booking_client import BlockBookingClient
from block_booking.errors import BlockBookingError
from block_booking.models import BlockApiCredentials
from block_booking.node import BlockBookingNode


async def status_changed(job):
    print(f"Status changed to: {job.status}")


async def main():
    PORT = 8000
    server = BookingServer(completion_time=8.0, error_rate=0.1, api_key="demo-key")
    await server.start(port=PORT)
    print(f"Server started on {server.base_url}")

    credentials = BlockApiCredentials(api_key="demo-key", base_url=server.base_url)
    items = [
        {
            "connectionId": "conn_demo",
            "datetime": "2025-11-18T10:00:00-08:00",
            "provider": "Dr. Rivera",
            "service": "Cleaning",
            "customer": {"customer": {"firstName": "Ada", "lastName": "Lovelace", "phone": "+12065551212"}},
            "duration": "45",
            "pollInterval": 1,
            "pollTimeout": 30,
        },
        {
            "connectionId": "conn_demo",
            "datetime": "2025-11-19T14:30:00-08:00",
            "provider": "Dr. Rivera",
            "service": "Checkup",
            "customer": {"customer": {"firstName": "Alan", "lastName": "Turing", "phone": "+12065551313"}},
            "pollInterval": 1,
            "pollTimeout": 30,
        },
    ]

    async with BlockBookingClient(credentials, on_status_change=status_changed) as client:
        node = BlockBookingNode(client)
        try:
            records = await node.execute("bookAppointment", items, continue_on_fail=True)
            for record in records:
                print(record.to_host())
        except BlockBookingError as e:
            print(f"Booking failed: {e.message}")

    await server.stop()


if __name__ == "__main__":
    asyncio.run(main())
