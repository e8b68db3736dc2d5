"""Tests for local storage and the theme catalog."""

from pathlib import Path

import pytest

from photostory.exceptions import StorageUnavailableError, ThemeNotFoundError
from photostory.render.animations import INTRO_VARIANTS, OUTRO_VARIANTS, intro_variants_for, outro_variants_for
from photostory.render.transitions import is_known_transition
from photostory.schemas.theme import Theme
from photostory.services.storage_service import LocalStorageService, content_type_for, output_key
from photostory.services.theme_catalog import StaticThemeCatalog


class TestLocalStorage:
    def test_output_key(self):
        assert output_key("p1", "j1", "mp4") == "p1/output/j1.mp4"

    def test_content_types(self):
        assert content_type_for("mp4") == "video/mp4"
        assert content_type_for("webm") == "video/webm"
        assert content_type_for("gif") == "application/octet-stream"

    @pytest.mark.asyncio
    async def test_upload_then_download(self, storage: LocalStorageService, tmp_path: Path):
        source = tmp_path / "video.mp4"
        source.write_bytes(b"video")

        url = await storage.upload_file(str(source), "p1/output/j1.mp4", "video/mp4")

        assert url == "http://testserver/storage/files/p1/output/j1.mp4"
        assert storage.file_exists("p1/output/j1.mp4")
        assert not storage.file_exists("p1/output/j1.mp4.partial")
        copy = await storage.download_file("p1/output/j1.mp4", str(tmp_path / "copy.mp4"))
        assert Path(copy).read_bytes() == b"video"

    @pytest.mark.asyncio
    async def test_upload_of_missing_file_is_transient(self, storage: LocalStorageService, tmp_path: Path):
        with pytest.raises(StorageUnavailableError):
            await storage.upload_file(str(tmp_path / "missing.mp4"), "p1/output/j1.mp4")

        assert not storage.file_exists("p1/output/j1.mp4")

    def test_delete(self, storage: LocalStorageService, tmp_path: Path):
        path = storage.get_file_path("p1/output/j1.mp4")
        path.write_bytes(b"x")

        assert storage.delete_file("p1/output/j1.mp4")
        assert not storage.delete_file("p1/output/j1.mp4")

    def test_keys_cannot_escape_root(self, storage: LocalStorageService):
        with pytest.raises(ValueError):
            storage.get_file_path("../../etc/passwd")


class TestThemeCatalog:
    def test_builtin_themes(self, themes: StaticThemeCatalog):
        assert len(themes.list()) >= 10
        assert themes.get("wedding-romance").category == "wedding"

    def test_unknown_theme_falls_back_to_default(self, themes: StaticThemeCatalog):
        assert themes.get("no-such-theme").id == "default"

    def test_strict_catalog_raises(self):
        with pytest.raises(ThemeNotFoundError):
            StaticThemeCatalog(strict=True).get("no-such-theme")

    def test_custom_catalog_without_default(self):
        catalog = StaticThemeCatalog([Theme(id="only", name="Only")])

        with pytest.raises(ThemeNotFoundError):
            catalog.get("other")

    def test_list_by_category(self, themes: StaticThemeCatalog):
        assert [t.id for t in themes.list("sports")] == ["sports-highlights"]

    @pytest.mark.parametrize("theme", StaticThemeCatalog().list(), ids=lambda t: t.id)
    def test_builtin_themes_reference_known_ids(self, theme: Theme):
        assert is_known_transition(theme.default_transition)
        assert set(intro_variants_for(theme)) <= set(INTRO_VARIANTS)
        assert set(outro_variants_for(theme)) <= set(OUTRO_VARIANTS)
