"""Polling implementation of the pipeline status channel."""

import asyncio
import logging
from collections.abc import Callable
from dataclasses import dataclass, field

import pydantic

from rising_stars.adapters.gateway_client import Gateway
from rising_stars.domain.errors import AuthError, NotFoundError, RisingStarsError
from rising_stars.domain.models import TERMINAL_STATUSES, VideoStatus
from rising_stars.domain.payloads import VideoPayload
from rising_stars.services.videos import PipelineStatusChannel, StatusListener

_logger = logging.getLogger(__name__)


@dataclass
class PollingStatusChannel(PipelineStatusChannel):
    """Polls the video detail endpoint until a terminal status or a timeout."""

    gateway: Gateway
    interval_seconds: float = 2.0
    timeout_seconds: float = 300.0
    on_auth_error: Callable[[], None] | None = None
    _tasks: dict[str, asyncio.Task[None]] = field(
        default_factory=dict, init=False, repr=False
    )

    @property
    def watching(self) -> set[str]:
        return set(self._tasks)

    def watch(self, video_id: str, listener: StatusListener) -> None:
        """Start a polling task for the video, replacing any previous one."""
        self.unwatch(video_id)
        self._tasks[video_id] = asyncio.create_task(self._poll(video_id, listener))

    def unwatch(self, video_id: str) -> None:
        """Cancel the polling task for the video, if any."""
        task = self._tasks.pop(video_id, None)
        if task is not None and task is not asyncio.current_task():
            task.cancel()

    async def close(self) -> None:
        """Cancel every polling task and wait for them to finish."""
        tasks = list(self._tasks.values())
        self._tasks.clear()
        for task in tasks:
            task.cancel()
        await asyncio.gather(*tasks, return_exceptions=True)

    async def _poll(self, video_id: str, listener: StatusListener) -> None:
        loop = asyncio.get_running_loop()
        deadline = loop.time() + self.timeout_seconds
        try:
            while True:
                await asyncio.sleep(self.interval_seconds)
                status = await self._observe(video_id)
                if status is not None:
                    listener.report_status(video_id, status)
                    if status in TERMINAL_STATUSES:
                        return
                if loop.time() >= deadline:
                    _logger.warning("Pipeline timed out for video_id=%s", video_id)
                    listener.report_status(video_id, VideoStatus.ERROR)
                    return
        except AuthError:
            _logger.warning(
                "Stopped polling video_id=%s: credential rejected", video_id
            )
            if self.on_auth_error is not None:
                self.on_auth_error()
        finally:
            if self._tasks.get(video_id) is asyncio.current_task():
                del self._tasks[video_id]

    async def _observe(self, video_id: str) -> VideoStatus | None:
        try:
            payload = await self.gateway.get_video(video_id)
        except NotFoundError:
            return VideoStatus.ERROR
        except AuthError:
            raise
        except RisingStarsError as exc:
            # transient; the deadline still ends the watch with an error
            _logger.warning("Polling video_id=%s failed: %s", video_id, exc.message)
            return None
        try:
            return VideoPayload.model_validate(payload).status
        except pydantic.ValidationError:
            _logger.warning("Malformed status for video_id=%s", video_id)
            return None
