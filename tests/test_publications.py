"""Tests for publication bookkeeping."""

import pytest

from post_sync.sync.publications import (
    FINAL_STATUSES,
    PublicationTracker,
    status_name,
)


@pytest.fixture
def tracker(store):
    return PublicationTracker(store)


@pytest.fixture
def draft(store):
    doc = store.upsert_document("/a.md", "fp")
    return store.insert_draft(doc, "draft_1")


class TestStatusName:
    @pytest.mark.parametrize(
        "code, name",
        [
            (0, "success"),
            (1, "publishing"),
            (2, "original_failed"),
            (3, "failed"),
            (4, "platform_rejected"),
            (5, "deleted"),
            (6, "banned"),
            ("0", "success"),
            (42, "unknown"),
            (None, "unknown"),
            ("abc", "unknown"),
        ],
    )
    def test_mapping(self, code, name):
        assert status_name(code) == name

    def test_publishing_is_not_final(self):
        assert "publishing" not in FINAL_STATUSES
        assert "success" in FINAL_STATUSES


class TestPublicationTracker:
    def test_record_publication(self, tracker, draft):
        record = tracker.record_publication(draft, "publish_1")

        assert record.status == "pending"
        assert tracker.find_publication_for(draft).publish_id == "publish_1"

    def test_latest_for_document(self, tracker, store, draft):
        tracker.record_publication(draft, "publish_1")
        tracker.record_publication(draft, "publish_2")

        doc = store.find_document("/a.md")
        assert tracker.latest_for(doc).publish_id == "publish_2"

    def test_in_progress_status_leaves_finished_at_unset(self, tracker, draft):
        record = tracker.record_publication(draft, "publish_1")

        updated = tracker.update_status(record, "publishing")

        assert updated.status == "publishing"
        assert updated.finished_at is None

    def test_final_status_stamps_finished_at(self, tracker, draft):
        record = tracker.record_publication(draft, "publish_1")

        updated = tracker.update_status(
            record, "success", article_id="art_1", article_url="https://x/1"
        )

        assert updated.finished_at is not None
        assert updated.article_id == "art_1"
        assert updated.article_url == "https://x/1"

    def test_finished_at_not_overwritten(self, tracker, draft):
        record = tracker.record_publication(draft, "publish_1")
        first = tracker.update_status(record, "success").finished_at

        again = tracker.update_status(record, "deleted")

        assert again.finished_at == first

    def test_retract(self, tracker, store, draft):
        record = tracker.record_publication(draft, "publish_1")

        tracker.retract(record)

        assert tracker.find_publication_for(draft) is None
        assert store.count_publications() == 0
