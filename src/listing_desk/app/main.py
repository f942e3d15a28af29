"""Composition root for the listing console engine.

Wires the REST clients, the submission workflow and the inbox around one
``Settings`` instance. ``lifespan`` is the startup hook: it configures
logging, creates the chat store tables and yields a ready ``ListingDesk``.
"""

from __future__ import annotations

import logging
from contextlib import asynccontextmanager
from dataclasses import dataclass
from typing import Any, AsyncIterator, Callable

import httpx

from listing_desk.app.config import Settings, get_settings
from listing_desk.app.log_config import configure_logging
from listing_desk.domain.enums import FormKind
from listing_desk.infra.database import async_session, close_db, init_db
from listing_desk.services.api_client import ApiClient
from listing_desk.services.chat_store import SqlChatBackend
from listing_desk.services.form_workflow import FormWorkflow
from listing_desk.services.inquiry_api import InquiryApi
from listing_desk.services.inquiry_inbox import InquiryInbox
from listing_desk.services.listing_api import PropertyApi
from listing_desk.services.media_orchestrator import ModerationOrchestrator
from listing_desk.services.moderation_client import ModerationClient
from listing_desk.services.submission_pipeline import SubmissionPipeline, SubmissionResult

logger = logging.getLogger(__name__)


@dataclass
class ListingDesk:
    """Service handles for one signed-in seller."""

    settings: Settings
    api: ApiClient
    moderation: ModerationClient
    properties: PropertyApi
    inquiries: InquiryApi

    # ------------------------------------------------------------------
    # Submission
    # ------------------------------------------------------------------

    def new_form(self, kind: FormKind = FormKind.PROPERTY, **kwargs: Any) -> FormWorkflow:
        return FormWorkflow(kind, settings=self.settings, **kwargs)

    def orchestrator_for(
        self,
        workflow: FormWorkflow,
        on_all_approved: Callable[[], Any] | None = None,
    ) -> ModerationOrchestrator:
        """Moderation for *workflow*'s images. By default an all-approved batch advances the form."""
        return ModerationOrchestrator(
            workflow.media,
            self.moderation,
            property_id=workflow.listing_id or 0,
            settings=self.settings,
            on_all_approved=on_all_approved or workflow.try_auto_advance,
        )

    async def submit(self, workflow: FormWorkflow, builder_name: str = "") -> SubmissionResult:
        pipeline = SubmissionPipeline(self.properties)
        result = await pipeline.submit(
            workflow.form,
            workflow.media,
            kind=workflow.kind,
            listing_id=workflow.listing_id,
            builder_name=builder_name,
        )
        logger.info("Submitted %s %s: %s", workflow.kind.value, result.listing_id, result.message)
        return result

    # ------------------------------------------------------------------
    # Inbox
    # ------------------------------------------------------------------

    @asynccontextmanager
    async def inbox(self, user_id: Any, **kwargs: Any) -> AsyncIterator[InquiryInbox]:
        """An inbox over a fresh chat store session, committed on clean exit."""
        async with async_session() as db:
            inbox = InquiryInbox(self.inquiries, SqlChatBackend(db), user_id, **kwargs)
            try:
                yield inbox
                await inbox.wait_idle()
                await db.commit()
            finally:
                inbox.close()


def build_desk(
    settings: Settings | None = None,
    *,
    transport: httpx.AsyncBaseTransport | None = None,
) -> ListingDesk:
    settings = settings or get_settings()
    api = ApiClient(settings, transport=transport)
    moderation = ModerationClient(api)
    return ListingDesk(
        settings=settings,
        api=api,
        moderation=moderation,
        properties=PropertyApi(api, moderation),
        inquiries=InquiryApi(api),
    )


@asynccontextmanager
async def lifespan(
    settings: Settings | None = None,
    *,
    transport: httpx.AsyncBaseTransport | None = None,
) -> AsyncIterator[ListingDesk]:
    """Startup: logging, chat store tables, then the wired desk. Connections are released on exit."""
    settings = settings or get_settings()
    configure_logging(settings)
    await init_db()
    logger.info("Listing desk ready against %s", settings.api_base_url)
    try:
        yield build_desk(settings, transport=transport)
    finally:
        await close_db()
