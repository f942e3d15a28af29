"""Concurrent moderation of picked images.

Each picked file becomes a pending ``MediaItem`` immediately. Validation then
runs as one moderation request per item, all dispatched together and joined
with ``asyncio.gather``. Responses are applied by item key, so a response for
an item removed in the meantime is dropped instead of landing on whatever
item now sits at its old position.
"""

from __future__ import annotations

import asyncio
import contextlib
import logging
from dataclasses import dataclass
from typing import Any, Callable, Iterable

from listing_desk.app.config import Settings, get_settings
from listing_desk.domain.enums import MediaState
from listing_desk.domain.errors import (
    MediaFileError,
    MediaLimitError,
    ModerationRejection,
    TransportError,
)
from listing_desk.domain.media import MediaCollection, MediaFile, MediaItem
from listing_desk.domain.schemas import ModerationResponse
from listing_desk.services.field_validators import check_image_file
from listing_desk.services.moderation_client import (
    GENERIC_REJECTION,
    ModerationClient,
    describe_rejection,
)

logger = logging.getLogger(__name__)

VALIDATION_FAILED = "Validation failed"
VALIDATION_RETRY_MESSAGE = "Failed to validate image. Please try again."


@dataclass(frozen=True)
class BatchReport:
    """Outcome counts for one validation batch."""

    requested: int
    approved: int = 0
    rejected: int = 0
    pending_review: int = 0
    discarded: int = 0

    @property
    def resolved(self) -> int:
        return self.approved + self.rejected + self.pending_review + self.discarded


def interpret_verdict(response: ModerationResponse) -> dict[str, Any]:
    """Map a moderation verdict to MediaItem changes.

    Raises ``ModerationRejection`` for anything that is neither approved nor
    held for review, including non-2xx responses.
    """
    if not 200 <= response.http_status < 300:
        raise ModerationRejection(
            describe_rejection(response) if response.message else VALIDATION_FAILED,
            full_message=response.message or f"HTTP {response.http_status} Error",
            error_code=response.error_code,
        )

    data = response.data or {}
    if response.status == "success":
        image_id = data.get("image_id")
        return {
            "state": MediaState.APPROVED,
            "error_message": None,
            "full_error_message": None,
            "remote_id": str(image_id) if image_id is not None else None,
            "remote_url": data.get("image_url") or data.get("url"),
        }
    if response.status == "pending_review":
        return {
            "state": MediaState.PENDING_REVIEW,
            "error_message": response.message or "Pending review",
        }
    raise ModerationRejection(
        describe_rejection(response),
        full_message=response.message or GENERIC_REJECTION,
        error_code=response.error_code,
    )


class ModerationOrchestrator:
    """Drives a ``MediaCollection`` through moderation.

    ``on_all_approved`` is scheduled after ``auto_advance_delay_seconds``
    whenever a resolution leaves every item approved.
    """

    def __init__(
        self,
        media: MediaCollection,
        moderation: ModerationClient,
        *,
        property_id: int | str = 0,
        settings: Settings | None = None,
        on_all_approved: Callable[[], Any] | None = None,
    ) -> None:
        self.media = media
        self.moderation = moderation
        self.property_id = property_id
        self.settings = settings or get_settings()
        self.on_all_approved = on_all_approved

        self.in_flight: set[str] = set()
        self.file_errors: list[str] = []
        self._batches: set[asyncio.Task] = set()
        self._auto_advance: asyncio.TimerHandle | None = None
        limit = self.settings.validation_concurrency
        self._limiter = asyncio.Semaphore(limit) if limit else None

    # ------------------------------------------------------------------
    # Public API
    # ------------------------------------------------------------------

    def add(self, files: Iterable[MediaFile]) -> list[MediaItem]:
        """Run local checks and append the passing files as pending items.

        Raises ``MediaLimitError`` when the batch would overflow the
        collection; failing files are skipped and their messages kept in
        ``file_errors``.
        """
        files = list(files)
        # The bound counts every picked file, before local checks
        if len(self.media) + len(files) > self.media.limit:
            raise MediaLimitError(self.media.limit, len(self.media), len(files))

        self.file_errors = []
        valid: list[MediaFile] = []
        for f in files:
            problem = check_image_file(f, self.settings.max_image_bytes)
            if problem:
                logger.info("Skipping %s: %s", f.filename, problem)
                self.file_errors.append(problem)
                continue
            valid.append(f)
        if files and not valid:
            raise MediaFileError(self.file_errors[-1])
        return self.media.add(valid)

    def submit_for_validation(self, files: Iterable[MediaFile]) -> list[MediaItem]:
        """Add *files* and start validating them in the background.

        Returns the pending items synchronously. Must be called from a
        running event loop.
        """
        items = self.add(files)
        if items:
            task = asyncio.ensure_future(self.validate_batch([i.key for i in items]))
            self._batches.add(task)
            task.add_done_callback(self._batches.discard)
        return items

    async def validate_batch(self, keys: Iterable[str]) -> BatchReport:
        """Validate the given items in parallel and wait for all of them."""
        keys = list(keys)
        outcomes = await asyncio.gather(*(self._validate_one(k) for k in keys))
        report = BatchReport(
            requested=len(keys),
            approved=outcomes.count(MediaState.APPROVED),
            rejected=outcomes.count(MediaState.REJECTED),
            pending_review=outcomes.count(MediaState.PENDING_REVIEW),
            discarded=outcomes.count(None),
        )
        logger.info(
            "Validation batch done: %d requested, %d approved, %d rejected, %d pending review",
            report.requested, report.approved, report.rejected, report.pending_review,
        )
        return report

    def remove(self, key: str) -> bool:
        """Drop an item. Its in-flight request, if any, finishes and is ignored."""
        removed = self.media.remove(key)
        if removed and self._auto_advance is not None and not self.media.all_approved():
            self._cancel_auto_advance()
        return removed

    async def wait_idle(self) -> None:
        """Wait for every background batch started by ``submit_for_validation``."""
        while self._batches:
            await asyncio.gather(*list(self._batches), return_exceptions=True)

    @property
    def is_checking(self) -> bool:
        return bool(self.in_flight)

    def close(self) -> None:
        self._cancel_auto_advance()

    # ------------------------------------------------------------------
    # Internal helpers
    # ------------------------------------------------------------------

    async def _validate_one(self, key: str) -> MediaState | None:
        item = self.media.get(key)
        if item is None or item.source is None:
            return None
        # One outstanding request per item; resolved items are never re-checked
        if key in self.in_flight or item.state != MediaState.PENDING:
            return None

        self.media.update(key, state=MediaState.CHECKING)
        self.in_flight.add(key)
        try:
            changes = await self._moderate(item.source)
        finally:
            self.in_flight.discard(key)

        if self.media.update(key, **changes) is None:
            logger.debug("Discarding moderation result for removed item %s", key)
            return None

        self._maybe_schedule_auto_advance()
        return changes["state"]

    async def _moderate(self, file: MediaFile) -> dict[str, Any]:
        limiter = self._limiter or contextlib.nullcontext()
        try:
            async with limiter:
                response = await self.moderation.check_image(file, self.property_id)
            return interpret_verdict(response)
        except ModerationRejection as rejection:
            logger.info("Image %s rejected: %s", file.filename, rejection.full_message)
            return {
                "state": MediaState.REJECTED,
                "error_message": rejection.reason,
                "full_error_message": rejection.full_message,
            }
        except TransportError as exc:
            logger.warning("Moderation request for %s failed: %s", file.filename, exc.message)
            return {
                "state": MediaState.REJECTED,
                "error_message": VALIDATION_FAILED,
                "full_error_message": VALIDATION_RETRY_MESSAGE,
            }

    def _maybe_schedule_auto_advance(self) -> None:
        if self.on_all_approved is None or not self.media.all_approved():
            return
        self._cancel_auto_advance()
        loop = asyncio.get_running_loop()
        self._auto_advance = loop.call_later(
            self.settings.auto_advance_delay_seconds, self._fire_auto_advance
        )

    def _fire_auto_advance(self) -> None:
        self._auto_advance = None
        # Items may have changed during the delay
        if self.on_all_approved is not None and self.media.all_approved():
            self.on_all_approved()

    def _cancel_auto_advance(self) -> None:
        if self._auto_advance is not None:
            self._auto_advance.cancel()
            self._auto_advance = None
