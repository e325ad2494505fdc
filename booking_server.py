import random
import uuid
from datetime import datetime
from typing import Optional

from aiohttp import web
from loguru import logger

PENDING_STATUSES = ["queued", "leased", "in_progress", "waiting_2fa"]


class BookingServer:
    """Local stand-in for the Block API used by tests and the example.

    Jobs either follow a scripted list of statuses (one per read, the last
    one repeating) or advance through the pending pipeline until
    completion_time has passed.
    """

    def __init__(
        self,
        completion_time: float = 10.0,
        error_rate: float = 0.0,
        api_key: str = "test-key",
    ):
        self.completion_time = completion_time
        self.error_rate = error_rate
        self.api_key = api_key
        self.statuses: Optional[list[str]] = None
        self.failing_reads = 0
        self.omit_job_id = False
        self.jobs: dict[str, dict] = {}
        self.actions: list[dict] = []
        self.reads = 0
        self.port: Optional[int] = None
        self.runner: Optional[web.AppRunner] = None
        self.app = web.Application(middlewares=[self.auth_middleware])
        self.app.router.add_post("/v1/actions", self.handle_action)
        self.app.router.add_get("/v1/jobs/{job_id}", self.handle_job)
        self.app.router.add_get("/v1/connections", self.handle_connections)
        self.logger = logger

    @web.middleware
    async def auth_middleware(self, request, handler):
        if request.headers.get("Authorization") != f"Bearer {self.api_key}":
            self.logger.info("Rejecting request with bad credentials")
            return web.json_response({"message": "Unauthorized"}, status=401)
        return await handler(request)

    async def handle_action(self, request):
        body = await request.json()
        self.actions.append(body)

        if self.omit_job_id:
            self.logger.info("Returning action response without job id")
            return web.json_response({"accepted": True})

        job_id = uuid.uuid4().hex
        self.jobs[job_id] = {
            "action": body["action"],
            "payload": body["payload"],
            "created": datetime.now(),
            "script": list(self.statuses) if self.statuses else None,
        }
        self.logger.info(f"Created job {job_id} for {body['action']}")
        return web.json_response({"jobId": job_id})

    async def handle_job(self, request):
        job_id = request.match_info["job_id"]
        job = self.jobs.get(job_id)
        if job is None:
            return web.json_response({"message": "Job not found"}, status=404)

        self.reads += 1
        if self.failing_reads > 0:
            self.failing_reads -= 1
            self.logger.info("Returning transient failure")
            return web.json_response({"message": "Service unavailable"}, status=503)

        status = self._next_status(job)
        data = {"id": job_id, "action": job["action"], "status": status}
        if status == "success":
            data["result"] = self._result_for(job)
        elif status == "error":
            data["errorCode"] = "slot_unavailable"
            data["errorMessage"] = "The requested slot is no longer available"
        self.logger.info(f"Returning {status} status for job {job_id}")
        return web.json_response(data)

    async def handle_connections(self, request):
        return web.json_response({"connections": [{"id": "conn_test", "platform": "demo"}]})

    def _next_status(self, job: dict) -> str:
        script = job["script"]
        if script:
            return script.pop(0) if len(script) > 1 else script[0]

        if random.random() < self.error_rate:
            return "error"

        elapsed = (datetime.now() - job["created"]).total_seconds()
        if elapsed >= self.completion_time:
            return "success"
        stage = int(elapsed / self.completion_time * len(PENDING_STATUSES))
        return PENDING_STATUSES[min(stage, len(PENDING_STATUSES) - 1)]

    @staticmethod
    def _result_for(job: dict) -> dict:
        payload = job["payload"]
        if job["action"] == "BookAppointment":
            return {
                "appointmentId": uuid.uuid4().hex[:12],
                "datetime": payload.get("datetime"),
                "provider": payload.get("provider"),
                "service": payload.get("service"),
            }
        return {
            "slots": [
                {"start": payload.get("startDate"), "provider": payload.get("provider", "any")}
            ]
        }

    @property
    def base_url(self) -> str:
        return f"http://127.0.0.1:{self.port}"

    async def start(self, port: int = 8080):
        self.runner = web.AppRunner(self.app)
        await self.runner.setup()
        site = web.TCPSite(self.runner, "127.0.0.1", port)
        await site.start()
        self.port = self.runner.addresses[0][1]
        self.logger.info(f"Server started on port {self.port}")
        return site

    async def stop(self):
        if self.runner is not None:
            await self.runner.cleanup()
            self.runner = None
