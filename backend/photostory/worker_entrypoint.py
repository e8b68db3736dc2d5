"""Worker entrypoint for Cloud Run.

Runs a health check server and the render worker pool. The pool pulls jobs
from the redis queue and reports job state through the internal API, so the
worker process needs no database access.
"""

import asyncio
import logging
import os
import signal
import threading
from http.server import BaseHTTPRequestHandler, HTTPServer

from photostory.config import get_settings
from photostory.queue import create_queue
from photostory.services.asset_fetcher import AssetFetcher
from photostory.services.storage_service import create_storage_service
from photostory.services.theme_catalog import StaticThemeCatalog
from photostory.worker import HttpJobChannel, RenderWorker

logger = logging.getLogger(__name__)


class HealthHandler(BaseHTTPRequestHandler):
    """Simple health check handler."""

    def do_GET(self):
        if self.path == "/health" or self.path == "/":
            self.send_response(200)
            self.send_header("Content-type", "text/plain")
            self.end_headers()
            self.wfile.write(b"OK")
        else:
            self.send_response(404)
            self.end_headers()

    def log_message(self, format, *args):
        # Suppress access logs
        pass


def run_health_server():
    """Run the health check server."""
    port = int(os.environ.get("PORT", 8080))
    server = HTTPServer(("0.0.0.0", port), HealthHandler)
    logger.info(f"[WORKER] Health server running on port {port}")
    server.serve_forever()


async def run_render_worker() -> None:
    """Run the worker pool until SIGTERM/SIGINT."""
    settings = get_settings()
    queue = create_queue(settings)
    channel = HttpJobChannel()
    storage = create_storage_service(settings)
    worker = RenderWorker(queue, channel, StaticThemeCatalog(), storage, AssetFetcher(storage))

    loop = asyncio.get_running_loop()
    stopping = asyncio.Event()
    for sig in (signal.SIGTERM, signal.SIGINT):
        loop.add_signal_handler(sig, stopping.set)

    worker_task = asyncio.create_task(worker.run())
    await stopping.wait()
    logger.info("[WORKER] Shutdown requested; finishing running jobs")
    await worker.stop()
    worker_task.cancel()
    await asyncio.gather(worker_task, return_exceptions=True)
    await channel.close()
    await queue.close()


if __name__ == "__main__":
    logging.basicConfig(
        level=get_settings().log_level,
        format="%(asctime)s %(levelname)s %(name)s: %(message)s",
    )

    # Start health server in background thread
    health_thread = threading.Thread(target=run_health_server, daemon=True)
    health_thread.start()

    # Run the render worker in the main thread
    asyncio.run(run_render_worker())
