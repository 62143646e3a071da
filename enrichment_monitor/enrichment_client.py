import asyncio
import json
from typing import Any, Awaitable, Callable, Optional

import aiohttp
from loguru import logger

from enrichment_monitor.errors import (
    EnrichmentCancelledError,
    EnrichmentFailedError,
    EnrichmentTerminalError,
    EnrichmentTimeoutError,
    SubmissionError,
)
from enrichment_monitor.models import (
    EnrichmentRequest,
    EnrichmentStatus,
    PollingConfig,
    StatusSnapshot,
)
from enrichment_monitor.notifier import LoggingNotifier, Notifier


class EnrichmentClient:
    def __init__(
        self,
        api_url: str,
        status_url: str,
        api_key: str,
        config: Optional[PollingConfig] = None,
        notifier: Optional[Notifier] = None,
        on_status_change: Optional[Callable[[StatusSnapshot], Awaitable[Any]]] = None,
    ):
        self.api_url = api_url
        self.status_url = status_url
        self.api_key = api_key
        self.config = config or PollingConfig()
        self.notifier = notifier or LoggingNotifier()
        self.logger = logger
        self.on_status_change = on_status_change

    async def submit(self, request: EnrichmentRequest) -> str:
        """Starts an enrichment job and returns its record id. Not retried"""
        headers = {
            "Authorization": f"Bearer {self.api_key}",
            "Content-Type": "application/json",
        }
        timeout = aiohttp.ClientTimeout(total=self.config.submit_timeout)
        self.logger.info(f"Sending enrichment request for {request.file_name}")

        body = None
        try:
            async with aiohttp.ClientSession(timeout=timeout) as session:
                async with session.post(
                    self.api_url, json=request.to_payload(), headers=headers
                ) as response:
                    body = await response.text()
                    response.raise_for_status()
        except aiohttp.ClientResponseError as e:
            self.logger.error(f"HTTP error {e.status} at {self.api_url}: {e.message}")
            raise SubmissionError(f"Enrichment request rejected with HTTP {e.status}", body) from e
        except (aiohttp.ClientError, asyncio.TimeoutError) as e:
            self.logger.error(f"Enrichment request to {self.api_url} failed: {e!r}")
            raise SubmissionError("Enrichment request could not be sent", repr(e)) from e

        try:
            data = json.loads(body)
        except ValueError:
            raise SubmissionError("Enrichment response is not JSON", body) from None

        if isinstance(data, list):
            data = data[0] if data else None
        record_id = data.get("record_id") if isinstance(data, dict) else None
        if not record_id:
            raise SubmissionError("Failed to get record id from enrichment request", data)

        self.logger.info(f"Enrichment request submitted. Record ID: {record_id}")
        return str(record_id)

    async def _get_status_once(
        self, session: aiohttp.ClientSession, record_id: str, attempt: int
    ) -> Optional[StatusSnapshot]:
        """Fetches the current status of a job, None when the body carries no data"""
        start_time = asyncio.get_running_loop().time()

        async with session.post(self.status_url, json={"record_id": record_id}) as response:
            response.raise_for_status()
            data = await response.json(content_type=None)

        if attempt == 1:
            self.logger.debug(f"Raw status response structure: {json.dumps(data, default=str)}")

        elapsed_time = asyncio.get_running_loop().time() - start_time
        return StatusSnapshot.from_payload(data, elapsed_time=elapsed_time, attempt=attempt)

    async def _handle_status_change(
        self, snapshot: StatusSnapshot, last_status: Optional[str]
    ) -> None:
        """Invoke the status change callback if the status has changed"""
        status = (snapshot.status or "").lower()
        if last_status != status and self.on_status_change is not None:
            self.logger.debug(f"Job status changed to {snapshot.status}")
            try:
                await self.on_status_change(snapshot)
            except Exception as e:
                self.logger.error(f"Status change callback failed: {e!r}")

    async def _notify(
        self, callback: Callable, request: EnrichmentRequest, snapshot: StatusSnapshot
    ) -> None:
        try:
            await callback(request, snapshot)
        except Exception as e:
            self.logger.error(f"Notification delivery failed: {e!r}")

    async def _handle_snapshot(
        self, snapshot: StatusSnapshot, request: EnrichmentRequest
    ) -> Optional[StatusSnapshot]:
        """Applies one snapshot; returns it when completed, raises on failure or cancellation"""
        status = snapshot.classified_status

        if status is EnrichmentStatus.completed:
            self.logger.info("Enrichment completed successfully, stopping polling")
            return snapshot

        if status is EnrichmentStatus.failed:
            self.logger.error("Enrichment failed, sending notification")
            await self._notify(self.notifier.notify_failed, request, snapshot)
            raise EnrichmentFailedError(snapshot.error_message or "Unknown error", snapshot)

        if status is EnrichmentStatus.cancelled:
            self.logger.warning("Enrichment cancelled, sending notification")
            await self._notify(self.notifier.notify_cancelled, request, snapshot)
            raise EnrichmentCancelledError(
                snapshot.cancellation_reason or "Unknown reason", snapshot
            )

        if status in (EnrichmentStatus.inprogress, EnrichmentStatus.inqueue):
            self.logger.info(f"Status: {snapshot.status} - continuing to poll")
            if snapshot.progress_percentage:
                self.logger.info(f"Progress: {snapshot.progress_percentage}%")
            if snapshot.queue_position:
                self.logger.info(f"Queue position: {snapshot.queue_position}")
        elif snapshot.status:
            self.logger.warning(f"Unknown status received: {snapshot.status} - continuing to poll")
        else:
            self.logger.warning("Status response carries no status - continuing to poll")
        return None

    async def _wait_before_retry(self) -> None:
        self.logger.debug(f"Waiting {self.config.poll_interval:.2f}s before next attempt")
        await asyncio.sleep(self.config.poll_interval)

    async def poll_until_complete(
        self, record_id: str, request: EnrichmentRequest
    ) -> StatusSnapshot:
        """Poll the status endpoint at a fixed interval until the job reaches a terminal state"""
        max_retries = self.config.max_retries
        timeout = aiohttp.ClientTimeout(total=self.config.request_timeout)
        attempt = 0
        last_status = None

        self.logger.info(f"Starting status monitoring for record ID: {record_id}")

        async with aiohttp.ClientSession(timeout=timeout) as session:
            while attempt < max_retries:
                try:
                    snapshot = await self._get_status_once(session, record_id, attempt + 1)

                    if snapshot is None:
                        self.logger.warning(
                            f"No data received in status response "
                            f"(attempt {attempt + 1}/{max_retries})"
                        )
                    else:
                        self.logger.info(
                            f"Status: {snapshot.status} - attempt {attempt + 1}/{max_retries}"
                        )
                        await self._handle_status_change(snapshot, last_status)
                        last_status = (snapshot.status or "").lower()

                        result = await self._handle_snapshot(snapshot, request)
                        if result is not None:
                            return result

                except EnrichmentTerminalError:
                    raise
                except aiohttp.ClientResponseError as e:
                    self.logger.error(
                        f"HTTP error {e.status} at {self.status_url} "
                        f"(attempt {attempt + 1}/{max_retries}): {e.message}"
                    )
                except asyncio.TimeoutError:
                    self.logger.error(
                        f"Status request timed out (attempt {attempt + 1}/{max_retries}), retrying"
                    )
                except aiohttp.ClientError as polling_error:
                    self.logger.error(
                        f"Error polling status (attempt {attempt + 1}/{max_retries}): "
                        f"{polling_error!r}"
                    )
                except Exception as e:
                    self.logger.error(
                        f"Unexpected error during status check "
                        f"(attempt {attempt + 1}/{max_retries}): {e!r}"
                    )

                await self._wait_before_retry()
                attempt += 1

        error = EnrichmentTimeoutError(attempt, self.config.estimated_minutes)
        self.logger.error(f"Polling timeout reached: {error}")
        raise error
