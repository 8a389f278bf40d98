"""
Tests for LessonUrlBatchProcessor.
"""

import pytest

from lesson_ingest.models.lesson_url import IngestionStatus
from lesson_ingest.services.ingestion.batch import LessonUrlBatchProcessor
from lesson_ingest.services.scraper import ScrapeError, ScrapeErrorKind
from tests.fakes import FakeEmbedder, FakeScraper, make_document

LESSON = "lesson-7"


class RoutingScraper:
    """Scraper failing for URLs that contain "broken"."""

    def __init__(self, markdown: str):
        self.ok = FakeScraper(markdown=markdown, title="Resource")
        self.calls: list[str] = []

    async def scrape(self, url: str):
        self.calls.append(url)
        if "broken" in url:
            raise ScrapeError(ScrapeErrorKind.HTTP_ERROR, "Scrape API error: 403", status_code=403)
        return await self.ok.scrape(url)


@pytest.mark.asyncio
class TestBatchProcessing:
    """Register then ingest several URLs for one lesson."""

    async def test_processes_all_urls(self, fake_store, make_orchestrator):
        scraper = RoutingScraper(make_document(2))
        processor = LessonUrlBatchProcessor(fake_store, make_orchestrator(scraper, FakeEmbedder()))

        outcome = await processor.process(LESSON, [
            {"url": "https://example.com/a", "title": "A"},
            {"url": "https://example.com/b"},
        ])

        assert outcome.lesson_id == LESSON
        assert outcome.summary.model_dump() == {
            "total_urls": 2,
            "successful": 2,
            "failed": 0,
            "total_chunks": 4,
        }
        assert [result.url for result in outcome.results] == ["https://example.com/a", "https://example.com/b"]
        assert outcome.errors == []
        assert scraper.calls == ["https://example.com/a", "https://example.com/b"]
        assert all(job.processing_status == IngestionStatus.COMPLETED for job in fake_store.jobs.values())

    async def test_failures_are_reported_per_url(self, fake_store, make_orchestrator):
        scraper = RoutingScraper(make_document(3))
        processor = LessonUrlBatchProcessor(fake_store, make_orchestrator(scraper, FakeEmbedder()))

        outcome = await processor.process(LESSON, [
            {"url": "https://example.com/good"},
            {"url": "https://example.com/broken"},
        ])

        assert outcome.summary.successful == 1
        assert outcome.summary.failed == 1
        assert outcome.summary.total_chunks == 3
        assert len(outcome.errors) == 1
        error = outcome.errors[0]
        assert error.url == "https://example.com/broken"
        assert error.user_message == "This website cannot be scraped. Please try a different URL."
        assert fake_store.jobs[error.lesson_url_id].processing_status == IngestionStatus.FAILED

    async def test_reuses_existing_records(self, fake_store, make_orchestrator):
        existing = fake_store.seed_job(LESSON, "https://example.com/a", processing_status=IngestionStatus.FAILED)
        processor = LessonUrlBatchProcessor(
            fake_store,
            make_orchestrator(RoutingScraper(make_document(1)), FakeEmbedder()),
        )

        outcome = await processor.process(LESSON, [
            {"url": "https://example.com/a"},
            {"url": " https://example.com/a "},
            {"url": "https://example.com/c"},
        ])

        assert len(fake_store.jobs) == 2
        assert outcome.summary.total_urls == 2
        assert outcome.results[0].lesson_url_id == existing.id
        assert existing.processing_status == IngestionStatus.COMPLETED

    async def test_new_records_keep_submitted_title_until_scraped(self, fake_store, make_orchestrator):
        scraper = RoutingScraper(make_document(1))
        processor = LessonUrlBatchProcessor(fake_store, make_orchestrator(scraper, FakeEmbedder()))

        outcome = await processor.process(LESSON, [{"url": "https://example.com/broken", "title": " My Notes "}])

        job = fake_store.jobs[outcome.errors[0].lesson_url_id]
        assert job.title == "My Notes"
        assert job.processing_status == IngestionStatus.FAILED

    async def test_registration_failure_skips_url(self, fake_store, make_orchestrator):
        fake_store.fail_create = True
        scraper = RoutingScraper(make_document(1))
        processor = LessonUrlBatchProcessor(fake_store, make_orchestrator(scraper, FakeEmbedder()))

        outcome = await processor.process(LESSON, [{"url": "https://example.com/a"}])

        assert outcome.summary.failed == 1
        assert outcome.summary.successful == 0
        assert outcome.results == []
        assert outcome.errors[0].url == "https://example.com/a"
        assert scraper.calls == []

    async def test_missing_url(self, fake_store, make_orchestrator):
        processor = LessonUrlBatchProcessor(
            fake_store,
            make_orchestrator(RoutingScraper(make_document(1)), FakeEmbedder()),
        )

        outcome = await processor.process(LESSON, [{"url": "  "}])

        assert outcome.summary.failed == 1
        assert outcome.errors[0].error == "Missing URL"
