"""
Character Card Importer
======================

Import character cards into the public library from YAML, JSON or PNG uploads.

Every upload runs as an ``UploadJob``:

    received -> validated -> normalized -> image_resolved -> embedded -> persisted
                                                                     \\-> failed

Nothing is written to the store until all earlier stages succeed, and the
upload file is deleted once whatever the outcome.
"""

import logging
import tempfile
from pathlib import Path
from typing import Any, Dict, Optional, Union

import yaml

from .avatar_processor import AvatarProcessor, ImageSource
from .errors import (
    CharacterCardError,
    InvalidContainerHeaderError,
    InvalidPayloadJsonError,
    MalformedContainerError,
    MissingNameError,
    NotACharacterCardError,
    UnsupportedFormatError,
)
from .format_detector import FormatDetector
from .metadata_handler import PNGMetadataHandler
from .models import (
    CardImportResult,
    CropBox,
    JobState,
    SourceFormat,
    SpecVersion,
    UploadJob,
    Uploader,
)
from .naming import humanized_timestamp, preserved_key, sanitize_file_name, sanitize_name
from .public_store import PublicCharacterStore
from .schema_normalizer import SchemaNormalizer, card_name

logger = logging.getLogger(__name__)

YAML_TIMESTAMP_TAG = "tag:yaml.org,2002:timestamp"


class CardYamlLoader(yaml.SafeLoader):
    """SafeLoader that leaves dates and timestamps as plain strings."""


CardYamlLoader.yaml_implicit_resolvers = {
    first: [(tag, regexp) for tag, regexp in resolvers if tag != YAML_TIMESTAMP_TAG]
    for first, resolvers in yaml.SafeLoader.yaml_implicit_resolvers.items()
}


class CharacterCardImporter:
    """Import character cards into the public store."""

    def __init__(
        self,
        store: PublicCharacterStore,
        avatar_processor: AvatarProcessor,
        uploads_dir: Path,
        normalizer: Optional[SchemaNormalizer] = None,
    ):
        """
        Initialize importer.

        Args:
            store: Destination for finished cards
            avatar_processor: Produces the image each card is embedded in
            uploads_dir: Directory for transient upload files
            normalizer: Schema normalizer (a default one is created if omitted)
        """
        self.store = store
        self.avatar_processor = avatar_processor
        self.uploads_dir = Path(uploads_dir)
        self.normalizer = normalizer or SchemaNormalizer()

        self.uploads_dir.mkdir(parents=True, exist_ok=True)

    def spool_upload(self, data: bytes, source_format: Optional[SourceFormat] = None) -> Path:
        """Write upload bytes to a transient file owned by the next job."""
        suffix = f".{source_format.value}" if source_format else ""
        with tempfile.NamedTemporaryFile(dir=self.uploads_dir, suffix=suffix, delete=False) as tmp:
            tmp.write(data)
            return Path(tmp.name)

    def import_card(
        self,
        source_format: Union[str, SourceFormat],
        source: Union[bytes, Path, str],
        uploader: Uploader,
        preserved_file_name: Optional[str] = None,
        crop: Optional[CropBox] = None,
    ) -> CardImportResult:
        """
        Import one upload into the public library.

        Args:
            source_format: Declared format ('yaml', 'yml', 'json' or 'png')
            source: Upload bytes, or path to an upload file the job takes
                ownership of (it is deleted when the job ends)
            uploader: Authenticated identity stamped onto the card
            preserved_file_name: Overwrite this existing key instead of deriving one
            crop: Optional crop applied to the avatar image

        Returns:
            CardImportResult with the stored file name and canonical record

        Raises:
            CharacterCardError: the specific reason the import failed
        """
        if isinstance(source, (bytes, bytearray)):
            source_path = self.spool_upload(bytes(source), self._declared_format(source_format))
        else:
            source_path = Path(source)

        job = UploadJob(
            source_format=str(getattr(source_format, "value", source_format)),
            source_path=source_path,
            uploader=uploader,
            preserved_file_name=preserved_file_name,
            crop=crop,
        )
        logger.info(f"Processing upload: format={job.source_format}, uploader={uploader.handle}")

        try:
            fmt = SourceFormat.parse(source_format)
            if fmt == SourceFormat.YAML:
                result = self._import_yaml(job)
            elif fmt == SourceFormat.JSON:
                result = self._import_json(job)
            elif fmt == SourceFormat.PNG:
                result = self._import_png(job)
            else:
                raise UnsupportedFormatError(f"Unsupported format: {fmt}")
        except CharacterCardError as e:
            job.fail(e)
            logger.warning(f"Failed to import character ({e.kind.value}): {e}")
            raise
        finally:
            job.discard()

        logger.info(f"Character {result.file_name} uploaded successfully by {uploader.handle}")
        return result

    # -- format drivers ----------------------------------------------------

    def _import_yaml(self, job: UploadJob) -> CardImportResult:
        try:
            document = yaml.load(job.read_text(), Loader=CardYamlLoader)
        except (yaml.YAMLError, UnicodeDecodeError) as e:
            raise InvalidPayloadJsonError(f"Invalid YAML data: {e}")
        if not isinstance(document, dict):
            raise UnsupportedFormatError("YAML character data is not a mapping")
        job.advance(JobState.VALIDATED)

        payload = document if "spec" in document else self._from_text_profile(document)
        return self._finish(
            job,
            payload,
            SourceFormat.YAML,
            image_source=self.avatar_processor.default_avatar_path,
            crop=None,
            resize=True,
        )

    def _import_json(self, job: UploadJob) -> CardImportResult:
        try:
            text = job.read_text()
        except UnicodeDecodeError as e:
            raise InvalidPayloadJsonError(f"Upload is not UTF-8 text: {e}")
        payload = FormatDetector.parse_json(text)
        job.advance(JobState.VALIDATED)

        return self._finish(
            job,
            payload,
            SourceFormat.JSON,
            image_source=self.avatar_processor.default_avatar_path,
            crop=None,
            resize=True,
        )

    def _import_png(self, job: UploadJob) -> CardImportResult:
        png_data = job.read_bytes()
        logger.debug(f"PNG upload size: {len(png_data)} bytes")

        if not PNGMetadataHandler.has_signature(png_data):
            raise InvalidContainerHeaderError(
                f"Invalid PNG file header: {png_data[:8].hex() or 'empty file'}"
            )

        try:
            raw_json = PNGMetadataHandler.decode(png_data)
        except (NotACharacterCardError, MalformedContainerError) as e:
            logger.error(f"Error reading character data from PNG: {e}")
            raise FormatDetector.classify_container_failure(png_data, e) from e

        payload = FormatDetector.parse_json(raw_json)
        if not card_name(payload):
            raise MissingNameError("Character name not found in PNG file")
        job.advance(JobState.VALIDATED)

        return self._finish(
            job,
            payload,
            SourceFormat.PNG,
            image_source=job.source_path,
            crop=job.crop,
            resize=bool(job.crop and job.crop.want_resize),
        )

    # -- shared tail -------------------------------------------------------

    def _finish(
        self,
        job: UploadJob,
        payload: Dict[str, Any],
        source_format: SourceFormat,
        image_source: ImageSource,
        crop: Optional[CropBox],
        resize: bool,
    ) -> CardImportResult:
        record = self.normalizer.normalize(payload, job.uploader)
        job.advance(JobState.NORMALIZED)

        file_name = preserved_key(job.preserved_file_name) or sanitize_file_name(record.name)
        if not file_name:
            raise MissingNameError(f"Character name {record.name!r} has no file-name safe characters")
        logger.debug(f"Generated PNG name: {file_name}")

        avatar = self.avatar_processor.process(image_source, crop=crop, resize=resize)
        job.advance(JobState.IMAGE_RESOLVED)

        warnings = list(avatar.attempts)
        if avatar.degraded:
            warnings.append(f"Image could not be decoded, used {avatar.strategy.value} image")

        keyword = "ccv3" if record.spec_version == SpecVersion.V3 else "chara"
        card_png = PNGMetadataHandler.encode(avatar.image_bytes, record.raw_json, keyword)
        job.advance(JobState.EMBEDDED)

        self.store.put(file_name, card_png)
        job.advance(JobState.PERSISTED)

        return CardImportResult(
            file_name=file_name,
            record=record,
            source_format=source_format,
            avatar_strategy=avatar.strategy,
            warnings=warnings,
        )

    @staticmethod
    def _declared_format(source_format: Union[str, SourceFormat]) -> Optional[SourceFormat]:
        """Parsed format for naming the spooled file; unknown formats fail later, inside the job."""
        try:
            return SourceFormat.parse(source_format)
        except UnsupportedFormatError:
            return None

    @staticmethod
    def _from_text_profile(document: Dict[str, Any]) -> Dict[str, Any]:
        """Map a text-generation style YAML profile (name/context/greeting) to V1."""
        name = sanitize_name(document.get("name"))
        if not name:
            raise MissingNameError("YAML character has no name")
        timestamp = humanized_timestamp()
        return {
            "name": name,
            "description": document.get("context") or "",
            "first_mes": document.get("greeting") or "",
            "chat": f"{name} - {timestamp}",
            "personality": "",
            "creatorcomment": "",
            "avatar": "none",
            "mes_example": "",
            "scenario": "",
            "talkativeness": 0.5,
            "creator": "",
            "tags": document.get("tags") or [],
        }
