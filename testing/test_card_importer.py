"""
Tests for the character card importer.

Tests cover:
- YAML / JSON / PNG drivers end to end
- Specific failure reasons for PNG uploads (never conflated)
- Upload file cleanup on success and on every failure path
- File naming and preserved-name re-import (last writer wins)
"""

import base64
import io
import json

import pytest
from PIL import Image

from card_library.services.character_cards.errors import (
    ErrorKind,
    InvalidContainerHeaderError,
    InvalidPayloadJsonError,
    MalformedContainerError,
    MissingNameError,
    NoTextSegmentsError,
    NotACharacterCardError,
    UnsupportedFormatError,
)
from card_library.services.character_cards.metadata_handler import PNGMetadataHandler
from card_library.services.character_cards.models import (
    AvatarStrategy,
    CropBox,
    SourceFormat,
    SpecVersion,
)

from conftest import AVATAR_SIZE


def b64(payload) -> str:
    text = payload if isinstance(payload, str) else json.dumps(payload)
    return base64.b64encode(text.encode("utf-8")).decode("ascii")


def image_size(data: bytes):
    with Image.open(io.BytesIO(data)) as image:
        image.load()
        return image.size


def leftover_uploads(uploads_dir):
    return list(uploads_dir.iterdir())


def pixels(data: bytes):
    with Image.open(io.BytesIO(data)) as image:
        return image.convert("RGBA").tobytes()


class TestJsonImport:

    def test_minimal_v1(self, importer, store, uploader, uploads_dir, processor, default_avatar_path):
        result = importer.import_card("json", b'{"name": "Aria"}', uploader)

        assert result.file_name == "Aria"
        assert (store.root_dir / "Aria.png").is_file()
        entry = store.get("Aria")
        assert entry.record.name == "Aria"
        assert entry.record.spec_version == SpecVersion.V1
        assert entry.record.uploader == uploader
        assert entry.artifact.keyword == "chara"
        assert image_size(entry.artifact.image_bytes) == AVATAR_SIZE
        expected = processor.render(default_avatar_path.read_bytes(), None, True)
        assert pixels(entry.artifact.image_bytes) == pixels(expected)
        assert leftover_uploads(uploads_dir) == []

    def test_v2_private_fields_not_persisted(self, importer, store, uploader):
        card = {
            "spec": "chara_card_v2",
            "data": {"name": "Seraphina", "user_notes": "secret"},
            "user_notes_private": "secret",
        }
        importer.import_card("json", json.dumps(card).encode(), uploader)
        payload = store.get("Seraphina").record.payload()
        assert "user_notes_private" not in payload
        assert "user_notes" not in payload["data"]

    def test_v3_uses_ccv3_keyword(self, importer, store, uploader):
        card = {"spec": "chara_card_v3", "spec_version": "3.0", "data": {"name": "Nova"}}
        result = importer.import_card("json", json.dumps(card).encode(), uploader)
        entry = store.get(result.file_name)
        assert entry.artifact.keyword == "ccv3"
        assert entry.record.spec_version == SpecVersion.V3

    def test_invalid_json(self, importer, uploader, uploads_dir):
        with pytest.raises(InvalidPayloadJsonError):
            importer.import_card("json", b"{nope", uploader)
        assert leftover_uploads(uploads_dir) == []

    def test_unsupported_payload(self, importer, uploader, uploads_dir):
        with pytest.raises(UnsupportedFormatError):
            importer.import_card("json", b'{"description": "nameless"}', uploader)
        assert leftover_uploads(uploads_dir) == []

    def test_client_uploader_overridden(self, importer, store, uploader):
        importer.import_card("json", b'{"name": "Aria", "uploader": "Mallory", "uploader_handle": "m"}', uploader)
        payload = store.get("Aria").record.payload()
        assert payload["uploader"] == "Alice"
        assert payload["uploader_handle"] == "alice"

    def test_unicode_name_file(self, importer, uploader):
        result = importer.import_card("json", json.dumps({"name": "星の 子"}).encode(), uploader)
        assert result.file_name == "星の_子"


class TestYamlImport:

    def test_text_profile(self, importer, store, uploader):
        document = "name: Rin\ncontext: A quiet librarian.\ngreeting: Welcome.\ntags: [calm]\n"
        result = importer.import_card("yml", document.encode(), uploader)
        record = store.get(result.file_name).record
        assert record.name == "Rin"
        assert record.description == "A quiet librarian."
        assert record.first_message == "Welcome."
        assert record.tags == {"calm"}
        assert record.spec_version == SpecVersion.V1
        assert result.source_format == SourceFormat.YAML

    def test_yaml_with_spec(self, importer, store, uploader):
        document = "spec: chara_card_v2\ndata:\n  name: Kai\n  user_notes: hidden\n"
        result = importer.import_card("yaml", document.encode(), uploader)
        payload = store.get(result.file_name).record.payload()
        assert payload["data"]["name"] == "Kai"
        assert "user_notes" not in payload["data"]

    def test_unquoted_dates_stay_strings(self, importer, store, uploader, uploads_dir):
        document = (
            "spec: chara_card_v2\n"
            "data:\n"
            "  name: Aria\n"
            "  extensions:\n"
            "    released: 2024-01-01\n"
            "    updated: 2024-01-02 10:30:00\n"
        )
        result = importer.import_card("yaml", document.encode(), uploader)
        extensions = store.get(result.file_name).record.payload()["data"]["extensions"]
        assert extensions == {"released": "2024-01-01", "updated": "2024-01-02 10:30:00"}
        assert leftover_uploads(uploads_dir) == []

    def test_invalid_yaml(self, importer, uploader, uploads_dir):
        with pytest.raises(InvalidPayloadJsonError):
            importer.import_card("yaml", b"name: [unclosed", uploader)
        assert leftover_uploads(uploads_dir) == []

    def test_yaml_without_name(self, importer, uploader):
        with pytest.raises(MissingNameError):
            importer.import_card("yaml", b"context: nobody\n", uploader)


class TestPngImport:

    def test_v1_card(self, importer, store, uploader, png_factory, uploads_dir):
        data = png_factory(size=(20, 30), text_chunks=[("chara", b64({"name": "Aria", "description": "d"}))])
        result = importer.import_card("png", data, uploader)

        entry = store.get(result.file_name)
        assert entry.record.description == "d"
        assert result.avatar_strategy == AvatarStrategy.SOURCE
        # no crop requested, original dimensions kept
        assert image_size(entry.artifact.image_bytes) == (20, 30)
        assert leftover_uploads(uploads_dir) == []

    def test_crop_with_resize(self, importer, store, uploader, png_factory):
        data = png_factory(size=(20, 30), text_chunks=[("chara", b64({"name": "Aria"}))])
        crop = CropBox(x=0, y=0, width=10, height=10, want_resize=True)
        result = importer.import_card("png", data, uploader, crop=crop)
        assert image_size(store.get(result.file_name).artifact.image_bytes) == AVATAR_SIZE

    def test_single_card_chunk_after_import(self, importer, store, uploader, png_factory):
        data = png_factory(text_chunks=[("chara", b64({"name": "A"})), ("ccv3", b64({"name": "B"}))])
        result = importer.import_card("png", data, uploader)
        keywords = [k for k, _ in PNGMetadataHandler.read_text_chunks(store.read_bytes(result.file_name))]
        assert keywords == ["chara"]

    def test_invalid_header(self, importer, uploader, uploads_dir):
        with pytest.raises(InvalidContainerHeaderError) as exc_info:
            importer.import_card("png", b"GIF89a not a png", uploader)
        assert exc_info.value.kind == ErrorKind.INVALID_CONTAINER_HEADER
        assert leftover_uploads(uploads_dir) == []

    def test_no_text_segments(self, importer, uploader, png_factory, uploads_dir):
        with pytest.raises(NoTextSegmentsError):
            importer.import_card("png", png_factory(), uploader)
        assert leftover_uploads(uploads_dir) == []

    def test_foreign_text_segment(self, importer, store, uploader, png_factory, uploads_dir):
        data = png_factory(text_chunks=[("other", b64({"name": "Aria"}))])
        with pytest.raises(NotACharacterCardError) as exc_info:
            importer.import_card("png", data, uploader)
        assert exc_info.value.kind == ErrorKind.NOT_A_CHARACTER_CARD
        assert leftover_uploads(uploads_dir) == []
        assert store.keys() == []

    def test_corrupt_card_chunk(self, importer, uploader, png_factory):
        data = png_factory(text_chunks=[("chara", "%%% not base64 %%%")])
        with pytest.raises(MalformedContainerError):
            importer.import_card("png", data, uploader)

    def test_truncated_png(self, importer, uploader, png_factory):
        data = png_factory(text_chunks=[("chara", b64({"name": "Aria"}))])
        with pytest.raises(MalformedContainerError):
            importer.import_card("png", data[:-20], uploader)

    def test_invalid_payload_json(self, importer, uploader, png_factory):
        data = png_factory(text_chunks=[("chara", b64("{broken"))])
        with pytest.raises(InvalidPayloadJsonError):
            importer.import_card("png", data, uploader)

    def test_missing_name(self, importer, uploader, png_factory):
        data = png_factory(text_chunks=[("chara", b64({"description": "who am I"}))])
        with pytest.raises(MissingNameError):
            importer.import_card("png", data, uploader)

    def test_path_source_is_deleted(self, importer, uploader, png_factory, tmp_path):
        upload = tmp_path / "incoming.png"
        upload.write_bytes(png_factory(text_chunks=[("chara", b64({"name": "Aria"}))]))
        importer.import_card("png", upload, uploader)
        assert not upload.exists()

    def test_path_source_deleted_on_failure(self, importer, uploader, tmp_path):
        upload = tmp_path / "incoming.png"
        upload.write_bytes(b"not a png")
        with pytest.raises(InvalidContainerHeaderError):
            importer.import_card("png", upload, uploader)
        assert not upload.exists()


class TestNamingAndReimport:

    def test_unknown_format(self, importer, uploader, uploads_dir):
        with pytest.raises(UnsupportedFormatError):
            importer.import_card("gif", b"whatever", uploader)
        assert leftover_uploads(uploads_dir) == []

    @pytest.mark.parametrize("declared", ["x/y", "../png"])
    def test_format_with_path_characters(self, importer, uploader, uploads_dir, declared):
        with pytest.raises(UnsupportedFormatError):
            importer.import_card(declared, b"{}", uploader)
        assert leftover_uploads(uploads_dir) == []

    def test_spooled_upload_named_by_parsed_format(self, importer):
        assert importer.spool_upload(b"{}", SourceFormat.JSON).suffix == ".json"
        assert importer.spool_upload(b"{}").suffix == ""

    def test_preserved_file_name_overrides(self, importer, store, uploader):
        result = importer.import_card("json", b'{"name": "Aria"}', uploader, preserved_file_name="old_card.png")
        assert result.file_name == "old_card"
        assert store.get("old_card").record.name == "Aria"

    def test_reimport_last_writer_wins(self, importer, store, uploader, png_factory):
        first = png_factory(text_chunks=[("chara", b64({"name": "Aria", "description": "one"}))])
        second = png_factory(text_chunks=[("chara", b64({"name": "Aria", "description": "two"}))])
        importer.import_card("png", first, uploader, preserved_file_name="Aria")
        importer.import_card("png", second, uploader, preserved_file_name="Aria")

        assert store.keys() == ["Aria"]
        assert store.get("Aria").record.description == "two"

    def test_punctuation_name_gets_filler_key(self, importer, uploader):
        result = importer.import_card("json", b'{"name": "!!!"}', uploader)
        assert result.file_name == "___"

    def test_name_empty_after_sanitization(self, importer, uploader):
        with pytest.raises(MissingNameError):
            importer.import_card("json", b'{"name": "//?"}', uploader)
