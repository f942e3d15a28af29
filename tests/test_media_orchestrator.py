"""Tests for concurrent image moderation and verdict handling."""

import asyncio

import pytest

from listing_desk.domain.enums import MediaState
from listing_desk.domain.errors import MediaFileError, MediaLimitError, ModerationRejection, TransportError
from listing_desk.domain.media import LocalPreviewRegistry, MediaCollection
from listing_desk.domain.schemas import ModerationResponse
from listing_desk.services.api_client import ApiClient
from listing_desk.services.media_orchestrator import ModerationOrchestrator, interpret_verdict
from listing_desk.services.moderation_client import ModerationClient, classify_rejection, describe_rejection


async def _settle():
    """Let scheduled tasks run until they block."""
    for _ in range(5):
        await asyncio.sleep(0)


@pytest.fixture
def previews():
    return LocalPreviewRegistry()


@pytest.fixture
def media(previews):
    return MediaCollection(limit=10, previews=previews)


@pytest.fixture
def orchestrator(media, fake_moderation, settings):
    return ModerationOrchestrator(media, fake_moderation, settings=settings)


# ---------------------------------------------------------------------------
# Verdict interpretation
# ---------------------------------------------------------------------------


class TestRejectionText:
    def test_animal_with_name(self):
        assert classify_rejection("Image contains animal appearance (Dog)") == "Dog detected"

    def test_animal_without_name(self):
        assert classify_rejection("animal appearance found") == "Animal detected"

    def test_passthrough(self):
        assert classify_rejection("Something odd") == "Something odd"
        assert classify_rejection(None) == "Image was rejected"

    def test_code_beats_text(self):
        response = ModerationResponse(status="error", message="weird text", error_code="human_detected")
        assert describe_rejection(response) == "Human detected"

    def test_animal_code_uses_details(self):
        response = ModerationResponse(
            status="error", message="", error_code="animal_detected", details={"detected": "Cat"}
        )
        assert describe_rejection(response) == "Cat detected"

    def test_unknown_code_falls_back_to_text(self):
        response = ModerationResponse(status="error", message="Image is blurry", error_code="mystery")
        assert describe_rejection(response) == "Image is too blurry"


class TestInterpretVerdict:
    def test_success(self, verdict):
        changes = interpret_verdict(verdict())
        assert changes["state"] == MediaState.APPROVED
        assert changes["remote_id"] == "7"
        assert changes["remote_url"] == "https://cdn.test/img/7.jpg"

    def test_pending_review(self, verdict):
        changes = interpret_verdict(verdict("pending_review", message="Held for review"))
        assert changes["state"] == MediaState.PENDING_REVIEW

    def test_http_error(self, verdict):
        with pytest.raises(ModerationRejection) as exc_info:
            interpret_verdict(verdict("error", 400, message="Contains human appearance"))
        assert exc_info.value.reason == "Human detected"
        assert exc_info.value.full_message == "Contains human appearance"

    def test_unknown_status_on_200(self, verdict):
        with pytest.raises(ModerationRejection):
            interpret_verdict(verdict("error", 200, error_code="low_quality"))


# ---------------------------------------------------------------------------
# Orchestration
# ---------------------------------------------------------------------------


class TestBatchValidation:
    async def test_one_request_per_image(self, orchestrator, fake_moderation, make_file):
        items = orchestrator.add([make_file(f"{i}.jpg") for i in range(4)])

        report = await orchestrator.validate_batch([i.key for i in items])

        assert len(fake_moderation.calls) == 4
        assert report.requested == 4
        assert report.approved == 4
        assert orchestrator.media.all_approved()

    async def test_mixed_outcomes(self, orchestrator, fake_moderation, verdict, make_file):
        fake_moderation.verdicts["dog.jpg"] = verdict(
            "error", 400, message="animal appearance (Dog)", error_code="animal_detected"
        )
        fake_moderation.verdicts["held.jpg"] = verdict("pending_review", message="Held")
        fake_moderation.verdicts["down.jpg"] = TransportError(0, "Network error")
        items = orchestrator.add([make_file("ok.jpg"), make_file("dog.jpg"), make_file("held.jpg"), make_file("down.jpg")])

        report = await orchestrator.validate_batch([i.key for i in items])

        assert (report.approved, report.rejected, report.pending_review) == (1, 2, 1)
        states = [i.state for i in orchestrator.media.items]
        assert states == [MediaState.APPROVED, MediaState.REJECTED, MediaState.PENDING_REVIEW, MediaState.REJECTED]
        assert orchestrator.media.items[1].error_message == "Dog detected"
        assert orchestrator.media.items[3].error_message == "Validation failed"

    async def test_server_error_page_is_not_shown(self, media, settings, json_transport, make_file):
        page = "<html><b>Fatal error</b>: Uncaught PDOException in /var/www/api.php</html>"
        api = ApiClient(settings, transport=json_transport(page, status_code=500, content_type="text/html"))
        orchestrator = ModerationOrchestrator(media, ModerationClient(api), settings=settings)
        (item,) = orchestrator.add([make_file("kitchen.jpg")])

        report = await orchestrator.validate_batch([item.key])

        stored = orchestrator.media.get(item.key)
        assert report.rejected == 1
        assert stored.state == MediaState.REJECTED
        assert stored.error_message == "Validation failed"
        assert stored.full_error_message == "Failed to validate image. Please try again."

    async def test_requests_run_concurrently(self, orchestrator, fake_moderation, make_file):
        gate = asyncio.Event()
        fake_moderation.delays["a.jpg"] = gate
        fake_moderation.delays["b.jpg"] = gate
        items = orchestrator.add([make_file("a.jpg"), make_file("b.jpg")])

        batch = asyncio.ensure_future(orchestrator.validate_batch([i.key for i in items]))
        await _settle()

        assert orchestrator.in_flight == {i.key for i in items}
        assert orchestrator.media.count(MediaState.CHECKING) == 2
        gate.set()
        await batch
        assert not orchestrator.is_checking

    async def test_resolved_items_are_not_rechecked(self, orchestrator, fake_moderation, make_file):
        items = orchestrator.add([make_file()])
        await orchestrator.validate_batch([items[0].key])
        report = await orchestrator.validate_batch([items[0].key])

        assert len(fake_moderation.calls) == 1
        assert report.discarded == 1

    async def test_late_response_for_removed_item_is_dropped(self, orchestrator, fake_moderation, make_file, previews):
        gate = asyncio.Event()
        fake_moderation.delays["gone.jpg"] = gate
        gone, kept = orchestrator.add([make_file("gone.jpg"), make_file("kept.jpg")])

        batch = asyncio.ensure_future(orchestrator.validate_batch([gone.key, kept.key]))
        await _settle()
        assert orchestrator.remove(gone.key)
        gate.set()
        report = await batch

        assert report.discarded == 1
        assert [i.key for i in orchestrator.media.items] == [kept.key]
        assert orchestrator.media.items[0].state == MediaState.APPROVED
        assert len(previews.released) == 1

    async def test_limiter_bounds_concurrency(self, media, fake_moderation, settings, make_file):
        limited = ModerationOrchestrator(media, fake_moderation, settings=settings.model_copy(update={"validation_concurrency": 1}))
        gate = asyncio.Event()
        fake_moderation.delays["a.jpg"] = gate
        items = limited.add([make_file("a.jpg"), make_file("b.jpg")])

        batch = asyncio.ensure_future(limited.validate_batch([i.key for i in items]))
        await _settle()
        assert [c[0] for c in fake_moderation.calls] == ["a.jpg"]
        gate.set()
        await batch
        assert len(fake_moderation.calls) == 2

    async def test_submit_for_validation_runs_in_background(self, orchestrator, fake_moderation, make_file):
        items = orchestrator.submit_for_validation([make_file("a.jpg"), make_file("b.jpg")])

        assert all(i.state == MediaState.PENDING for i in items)
        await orchestrator.wait_idle()
        assert orchestrator.media.all_approved()


class TestAddingFiles:
    def test_limit_counts_every_picked_file(self, orchestrator, make_file):
        orchestrator.add([make_file(f"{i}.jpg") for i in range(8)])

        with pytest.raises(MediaLimitError) as exc_info:
            orchestrator.add([make_file("x.jpg"), make_file("y.jpg"), make_file("z.txt", "text/plain")])

        assert str(exc_info.value) == "Maximum 10 files allowed. You have 8 and trying to add 3"
        assert len(orchestrator.media) == 8

    def test_invalid_files_skipped(self, orchestrator, make_file):
        items = orchestrator.add([make_file("ok.jpg"), make_file("notes.txt", "text/plain")])

        assert len(items) == 1
        assert orchestrator.file_errors == ["Invalid file type. Please upload JPG, PNG, or WebP images."]

    def test_all_invalid_raises(self, orchestrator, make_file):
        with pytest.raises(MediaFileError):
            orchestrator.add([make_file("notes.txt", "text/plain")])


class TestAutoAdvance:
    async def test_fires_once_all_approved(self, media, fake_moderation, settings, make_file):
        fired = []
        orch = ModerationOrchestrator(media, fake_moderation, settings=settings, on_all_approved=lambda: fired.append(True))
        items = orch.add([make_file("a.jpg"), make_file("b.jpg")])

        await orch.validate_batch([i.key for i in items])
        await asyncio.sleep(0.01)

        assert fired == [True]

    async def test_not_fired_when_any_rejected(self, media, fake_moderation, settings, verdict, make_file):
        fired = []
        fake_moderation.verdicts["bad.jpg"] = verdict("error", 400, message="Image is blurry")
        orch = ModerationOrchestrator(media, fake_moderation, settings=settings, on_all_approved=lambda: fired.append(True))
        items = orch.add([make_file("a.jpg"), make_file("bad.jpg")])

        await orch.validate_batch([i.key for i in items])
        await asyncio.sleep(0.01)

        assert fired == []

    async def test_cancelled_by_close(self, media, fake_moderation, settings, make_file):
        fired = []
        slow = settings.model_copy(update={"auto_advance_delay_seconds": 0.05})
        orch = ModerationOrchestrator(media, fake_moderation, settings=slow, on_all_approved=lambda: fired.append(True))
        items = orch.add([make_file("a.jpg")])

        await orch.validate_batch([items[0].key])
        orch.close()
        await asyncio.sleep(0.1)

        assert fired == []
