"""Two-phase submission: create the listing, then attach its media.

New listings are created with an empty image list first so every upload can
carry the server-assigned id. A failed create is terminal and uploads
nothing. Upload failures after a successful create are not: whatever did
upload is attached, and the result reports the counts.
"""

from __future__ import annotations

import asyncio
import logging
from dataclasses import dataclass, field
from typing import Any, Iterable, Mapping

from listing_desk.domain.enums import FormKind, MediaState
from listing_desk.domain.errors import (
    PartialFailure,
    SubmissionError,
    TerminalCreationFailure,
    TransportError,
)
from listing_desk.domain.media import MediaItem
from listing_desk.services.listing_api import PropertyApi
from listing_desk.services.project_payload import build_project_payload, build_property_payload

logger = logging.getLogger(__name__)


@dataclass(frozen=True)
class UploadOutcome:
    key: str
    url: str | None = None
    error: str | None = None

    @property
    def succeeded(self) -> bool:
        return self.url is not None


@dataclass(frozen=True)
class SubmissionResult:
    listing_id: str
    created: bool
    message: str
    image_urls: tuple[str, ...] = ()
    uploads: tuple[UploadOutcome, ...] = ()
    partial_failure: PartialFailure | None = field(default=None, compare=False)

    @property
    def uploaded(self) -> int:
        return sum(1 for u in self.uploads if u.succeeded)

    @property
    def failed(self) -> int:
        return sum(1 for u in self.uploads if not u.succeeded)

    @property
    def complete(self) -> bool:
        return self.partial_failure is None


class SubmissionPipeline:
    """Submits a form plus its media through ``PropertyApi``."""

    def __init__(self, properties: PropertyApi) -> None:
        self.properties = properties

    async def submit(
        self,
        form: Mapping[str, Any],
        media: Iterable[MediaItem],
        *,
        kind: FormKind = FormKind.PROPERTY,
        listing_id: int | str | None = None,
        builder_name: str = "",
    ) -> SubmissionResult:
        items = list(media)
        if listing_id is None:
            return await self._create(form, items, kind, builder_name)
        return await self._update(listing_id, form, items, kind, builder_name)

    # ------------------------------------------------------------------
    # New listing
    # ------------------------------------------------------------------

    async def _create(
        self,
        form: Mapping[str, Any],
        items: list[MediaItem],
        kind: FormKind,
        builder_name: str,
    ) -> SubmissionResult:
        noun = _noun(kind)
        payload = _payload(form, kind, builder_name, images=())

        try:
            record = await self.properties.create(payload)
        except TransportError as exc:
            logger.error("%s creation failed: %s", noun, exc.message)
            raise TerminalCreationFailure(
                f"Failed to create {noun.lower()}. Please try again.", cause=exc
            ) from exc

        new_id = record.get("id")
        if new_id in (None, "", 0):
            raise TerminalCreationFailure(
                f"Failed to get {noun.lower()} ID after creation. Please refresh and try again."
            )
        listing_id = str(new_id)

        approved = [i for i in items if i.is_new and i.state == MediaState.APPROVED]
        if not approved:
            return SubmissionResult(
                listing_id=listing_id, created=True, message=f"{noun} created successfully."
            )

        outcomes = await self._upload_all(listing_id, approved)
        urls = tuple(o.url for o in outcomes if o.succeeded)

        if urls:
            try:
                await self.properties.update(listing_id, {"images": list(urls)})
            except TransportError as exc:
                logger.error("Linking %d image(s) to %s %s failed: %s", len(urls), noun, listing_id, exc.message)
                failure = PartialFailure(0, len(outcomes), [exc.message])
                return SubmissionResult(
                    listing_id=listing_id,
                    created=True,
                    message=(
                        f"{noun} created successfully, but failed to link {len(urls)} image(s). "
                        f"You can edit the {noun.lower()} to add images."
                    ),
                    uploads=tuple(outcomes),
                    partial_failure=failure,
                )

        return _result(listing_id, True, noun, "created", urls, outcomes)

    # ------------------------------------------------------------------
    # Existing listing
    # ------------------------------------------------------------------

    async def _update(
        self,
        listing_id: int | str,
        form: Mapping[str, Any],
        items: list[MediaItem],
        kind: FormKind,
        builder_name: str,
    ) -> SubmissionResult:
        noun = _noun(kind)
        listing_id = str(listing_id)

        existing = [i.remote_url for i in items if not i.is_new and i.remote_url]
        # Moderation against a real id already stored these
        stored = [
            i.remote_url for i in items
            if i.is_new and i.state == MediaState.APPROVED and i.remote_url
        ]
        to_upload = [
            i for i in items
            if i.is_new and i.state == MediaState.APPROVED and not i.remote_url
        ]

        outcomes = await self._upload_all(listing_id, to_upload) if to_upload else []
        uploaded = [o.url for o in outcomes if o.succeeded]
        urls = tuple(existing + stored + uploaded)

        payload = _payload(form, kind, builder_name, images=urls)
        try:
            await self.properties.update(listing_id, payload)
        except TransportError as exc:
            logger.error("%s %s update failed: %s", noun, listing_id, exc.message)
            raise SubmissionError(
                exc.message or f"Failed to save {noun.lower()}. Please check your connection and try again.",
                cause=exc,
            ) from exc

        return _result(listing_id, False, noun, "updated", urls, outcomes)

    # ------------------------------------------------------------------
    # Uploads
    # ------------------------------------------------------------------

    async def _upload_all(self, listing_id: str, items: list[MediaItem]) -> list[UploadOutcome]:
        return list(await asyncio.gather(*(self._upload_one(listing_id, i) for i in items)))

    async def _upload_one(self, listing_id: str, item: MediaItem) -> UploadOutcome:
        try:
            uploaded = await self.properties.upload_image(item.source, listing_id)
        except TransportError as exc:
            logger.warning("Upload of %s failed: %s", item.key, exc.message)
            return UploadOutcome(item.key, error=exc.message or "Upload failed")
        return UploadOutcome(item.key, url=uploaded.url)


def _noun(kind: FormKind) -> str:
    return "Project" if kind == FormKind.PROJECT else "Property"


def _payload(
    form: Mapping[str, Any],
    kind: FormKind,
    builder_name: str,
    images: Iterable[str],
) -> dict[str, Any]:
    if kind == FormKind.PROJECT:
        return build_project_payload(form, builder_name, images=images)
    return build_property_payload(form, images=images)


def _result(
    listing_id: str,
    created: bool,
    noun: str,
    verb: str,
    urls: tuple[str, ...],
    outcomes: list[UploadOutcome],
) -> SubmissionResult:
    failed = [o for o in outcomes if not o.succeeded]
    if not failed:
        return SubmissionResult(
            listing_id=listing_id,
            created=created,
            message=f"{noun} {verb} successfully.",
            image_urls=urls,
            uploads=tuple(outcomes),
        )

    succeeded = len(outcomes) - len(failed)
    total = len(outcomes)
    # Unique messages, first-seen order
    errors = list(dict.fromkeys(o.error for o in failed if o.error))
    failure = PartialFailure(succeeded, len(failed), errors)

    if succeeded == 0:
        detail = errors[0] if errors else "Please check server permissions and try again."
        message = f"{noun} {verb} but no images were uploaded. Failed to upload all images. {detail}"
    else:
        message = (
            f"{noun} {verb} but {len(failed)} of {total} image(s) failed to upload "
            f"({succeeded} of {total} uploaded). {'; '.join(errors)}"
        ).rstrip()
    logger.warning("%s %s: %d of %d image uploads failed", noun, listing_id, len(failed), total)

    return SubmissionResult(
        listing_id=listing_id,
        created=created,
        message=message,
        image_urls=urls,
        uploads=tuple(outcomes),
        partial_failure=failure,
    )
