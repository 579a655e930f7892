import base64
import random
import uuid
from datetime import datetime

from aiohttp import web
from loguru import logger


class JobServer:
    """In-memory stand-in for a remote asynchronous job service"""

    def __init__(
        self,
        completion_time: float = 10.0,
        error_rate: float = 0.1,
        page_size: int = 2,
        result_count: int = 5,
    ):
        self.completion_time = completion_time
        self.error_rate = error_rate
        self.page_size = page_size
        self.result_count = result_count
        self.jobs = {}
        self.batches = []
        self.status_requests = 0
        self.app = web.Application()
        self.app.router.add_post("/jobs", self.handle_submit)
        self.app.router.add_get("/jobs/{job_id}", self.handle_status)
        self.app.router.add_get("/jobs/{job_id}/results", self.handle_results)
        self.app.router.add_post("/batches", self.handle_batch)
        self.logger = logger

    async def handle_submit(self, request):
        params = await request.json()
        job_id = str(uuid.uuid4())
        self.jobs[job_id] = {
            "params": params,
            "start_time": datetime.now(),
            "status": "queued",
        }
        self.logger.info(f"Accepted job {job_id}")
        return web.json_response({"job_id": job_id})

    def _current_status(self, job: dict) -> str:
        if job["status"] in ("succeeded", "failed"):
            return job["status"]

        if random.random() < self.error_rate:
            return "failed"

        elapsed = (datetime.now() - job["start_time"]).total_seconds()
        if elapsed >= self.completion_time:
            return "succeeded"
        return "running"

    async def handle_status(self, request):
        self.status_requests += 1
        job_id = request.match_info["job_id"]
        job = self.jobs.get(job_id)
        if job is None:
            raise web.HTTPNotFound(text=f"unknown job {job_id}")

        job["status"] = self._current_status(job)
        self.logger.info(f"Returning {job['status']} status for {job_id}")
        return web.json_response({"job": {"id": job_id, "status": job["status"]}})

    async def handle_results(self, request):
        job_id = request.match_info["job_id"]
        job = self.jobs.get(job_id)
        if job is None or job["status"] != "succeeded":
            raise web.HTTPConflict(text=f"job {job_id} has no results")

        start = int(request.query.get("next_token", "0"))
        end = min(start + self.page_size, self.result_count)
        items = [{"row": index} for index in range(start, end)]
        next_token = str(end) if end < self.result_count else None
        return web.json_response({"items": items, "next_token": next_token})

    async def handle_batch(self, request):
        payload = await request.json()
        records = [
            {**record, "data": base64.b64decode(record["data"])}
            for record in payload.get("records", [])
        ]
        self.batches.append(records)
        self.logger.info(f"Accepted batch of {len(records)} records")
        return web.json_response({"accepted": len(records), "failed": 0})

    async def start(self, port: int = 8080):
        runner = web.AppRunner(self.app)
        await runner.setup()
        site = web.TCPSite(runner, "localhost", port)
        await site.start()
        self.logger.info(f"Server started on port {port}")
        return site
