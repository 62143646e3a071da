import asyncio
from typing import Any, List, Optional

from aiohttp import web
from loguru import logger


class EnrichmentServer:
    """Local stand-in for the enrichment service.

    Status replies are taken from `statuses` in order, the last one repeating
    once the list runs out. An int entry is answered as a bare HTTP error with
    that status code and a str entry as a plain-text 200 body. A
    `(seconds, reply)` tuple sleeps before answering with `reply`. Any other
    entry is sent as the JSON body.
    """

    def __init__(
        self,
        statuses: Optional[List[Any]] = None,
        record_id: Optional[str] = "rec-1",
        api_key: str = "test-key",
    ):
        self.statuses = list(statuses or [{"enrichment_status": "Completed"}])
        self.record_id = record_id
        self.api_key = api_key
        self.status_queries: List[dict] = []
        self.submissions: List[dict] = []
        self.webhooks: List[dict] = []
        self.webhook_status = 204
        self.app = web.Application()
        self.app.router.add_post("/enrich", self.handle_enrich)
        self.app.router.add_post("/status", self.handle_status)
        self.app.router.add_post("/webhook", self.handle_webhook)
        self.logger = logger
        self.runner: Optional[web.AppRunner] = None

    async def handle_enrich(self, request):
        if request.headers.get("Authorization") != f"Bearer {self.api_key}":
            return web.json_response({"error": "unauthorized"}, status=401)

        body = await request.json()
        self.submissions.append(body)
        if self.record_id is None:
            return web.json_response({"message": "queued"})
        return web.json_response({"record_id": self.record_id})

    async def handle_status(self, request):
        body = await request.json()
        self.status_queries.append(body)

        index = min(len(self.status_queries), len(self.statuses)) - 1
        reply = self.statuses[index]
        self.logger.info(f"Returning status reply #{len(self.status_queries)}: {reply}")

        if isinstance(reply, tuple):
            delay, reply = reply
            await asyncio.sleep(delay)
        if isinstance(reply, int):
            return web.Response(status=reply, text="error")
        if isinstance(reply, str):
            return web.Response(status=200, text=reply)
        return web.json_response(reply)

    async def handle_webhook(self, request):
        self.webhooks.append(await request.json())
        return web.Response(status=self.webhook_status)

    async def start(self, port: int = 8080):
        self.runner = web.AppRunner(self.app)
        await self.runner.setup()
        site = web.TCPSite(self.runner, "localhost", port)
        await site.start()
        self.logger.info(f"Server started on port {port}")
        return site

    async def stop(self):
        if self.runner is not None:
            await self.runner.cleanup()
