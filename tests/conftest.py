"""Shared pytest fixtures for post-sync tests."""

from __future__ import annotations

import io
from pathlib import Path
from typing import Any

import pytest
from dotenv import load_dotenv
from PIL import Image

from post_sync.config import Config
from post_sync.converters.markdown_to_html import MarkdownTransform
from post_sync.errors import PermanentRemoteError
from post_sync.sync.assets import AssetResolver
from post_sync.sync.engine import SyncEngine
from post_sync.sync.oracle import RemoteExistenceOracle
from post_sync.sync.state import SyncStore

load_dotenv()


def pytest_addoption(parser):
    """Add custom CLI options for test filtering."""
    parser.addoption(
        "--run-live",
        action="store_true",
        default=False,
        help="Run tests that require real WeChat credentials",
    )


def pytest_collection_modifyitems(config, items):
    """Skip live tests unless --run-live is passed."""
    if config.getoption("--run-live"):
        return
    skip_live = pytest.mark.skip(reason="need --run-live option to run")
    for item in items:
        if "live" in item.keywords:
            item.add_marker(skip_live)


# ---------------------------------------------------------------------------
# Fake remote side
# ---------------------------------------------------------------------------


class FakeWeChatClient:
    """In-memory stand-in for ``WeChatClient``.

    Drafts, permanent material and publications live in dicts.  Tests
    delete entries directly to simulate edits made in the WeChat console.
    """

    def __init__(self) -> None:
        self.drafts: dict[str, Any] = {}
        self.materials: dict[str, bytes] = {}
        self.publications: dict[str, dict] = {}
        self.deleted_articles: list[str] = []
        self.calls: list[tuple[str, str]] = []
        self.uploads: list[tuple[str, str]] = []
        self.publish_error: Exception | None = None
        self.draft_check_error: Exception | None = None
        self.asset_check_error: Exception | None = None
        self._seq = 0

    def _next(self, prefix: str) -> str:
        self._seq += 1
        return f"{prefix}_{self._seq}"

    # Drafts

    def create_draft(self, article) -> str:
        media_id = self._next("draft")
        self.drafts[media_id] = article
        self.calls.append(("create_draft", media_id))
        return media_id

    def update_draft(self, media_id: str, article, index: int = 0) -> None:
        if media_id not in self.drafts:
            raise PermanentRemoteError("invalid media_id", errcode=40007)
        self.drafts[media_id] = article
        self.calls.append(("update_draft", media_id))

    def get_draft(self, media_id: str):
        self.calls.append(("get_draft", media_id))
        if self.draft_check_error is not None:
            raise self.draft_check_error
        article = self.drafts.get(media_id)
        if article is None:
            return None
        return [{"title": article.title, "content": article.content}]

    def delete_draft(self, media_id: str) -> None:
        self.calls.append(("delete_draft", media_id))
        self.drafts.pop(media_id, None)

    def list_drafts(self, offset: int = 0, count: int = 20) -> dict:
        page = list(self.drafts.items())[offset : offset + count]
        items = [
            {
                "media_id": media_id,
                "content": {"news_item": [{"title": article.title}]},
                "update_time": 1700000000,
            }
            for media_id, article in page
        ]
        return {
            "total_count": len(self.drafts),
            "item_count": len(items),
            "item": items,
        }

    # Publishing

    def publish(self, media_id: str) -> str:
        self.calls.append(("publish", media_id))
        if self.publish_error is not None:
            raise self.publish_error
        publish_id = self._next("publish")
        self.publications[publish_id] = {
            "publish_id": publish_id,
            "publish_status": 0,
            "article_id": f"article_{publish_id}",
            "article_detail": {
                "count": 1,
                "item": [
                    {
                        "idx": 1,
                        "article_url": f"https://mp.weixin.qq.com/s/{publish_id}",
                    }
                ],
            },
        }
        return publish_id

    def get_publication_status(self, publish_id: str) -> dict:
        self.calls.append(("get_publication_status", publish_id))
        return self.publications[publish_id]

    def delete_publication(self, article_id: str) -> None:
        self.calls.append(("delete_publication", article_id))
        self.deleted_articles.append(article_id)

    def list_publications(self, offset: int = 0, count: int = 20) -> dict:
        return {"total_count": 0, "item_count": 0, "item": []}

    # Material

    def upload_asset(self, data: bytes, filename: str, mime_type: str) -> dict:
        media_id = self._next("img")
        self.materials[media_id] = data
        self.uploads.append((filename, mime_type))
        return {"media_id": media_id, "url": f"https://mmbiz.qpic.cn/{media_id}"}

    def check_asset_exists(self, media_id: str) -> bool:
        if self.asset_check_error is not None:
            raise self.asset_check_error
        return media_id in self.materials

    def count(self, name: str) -> int:
        return sum(1 for call, _ in self.calls if call == name)


# ---------------------------------------------------------------------------
# Fixtures
# ---------------------------------------------------------------------------


@pytest.fixture
def make_image():
    """Factory encoding a solid-colour image with Pillow."""

    def _make(
        fmt: str = "PNG",
        color: tuple[int, int, int] = (200, 30, 30),
        size: tuple[int, int] = (16, 16),
    ) -> bytes:
        out = io.BytesIO()
        Image.new("RGB", size, color).save(out, format=fmt)
        return out.getvalue()

    return _make


@pytest.fixture
def mock_config(tmp_path: Path) -> Config:
    """Create a Config instance for testing."""
    return Config(
        app_id="wx_test_app",
        app_secret="test_secret",
        api_base_url="https://api.example.com",
        db_path=str(tmp_path / "db.sqlite"),
    )


@pytest.fixture
def fake_client() -> FakeWeChatClient:
    return FakeWeChatClient()


@pytest.fixture
def store(tmp_path: Path):
    """A fresh sync store backed by a temporary SQLite file."""
    with SyncStore(tmp_path / "sync.sqlite") as s:
        yield s


@pytest.fixture
def oracle(fake_client) -> RemoteExistenceOracle:
    return RemoteExistenceOracle(fake_client)


@pytest.fixture
def resolver(fake_client, store, oracle) -> AssetResolver:
    return AssetResolver(fake_client, store, oracle)


@pytest.fixture
def engine(fake_client, store, oracle, resolver) -> SyncEngine:
    return SyncEngine(fake_client, store, MarkdownTransform(resolver), oracle)


@pytest.fixture
def docs(tmp_path: Path) -> Path:
    """Directory for test documents, separate from the database."""
    d = tmp_path / "docs"
    d.mkdir()
    return d
