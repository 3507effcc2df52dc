"""
Avatar Processor
================

Produces the PNG image a character card is embedded into.

Decoding is attempted through an ordered list of strategies; the first one
that yields an image wins:

1. ``source``              the uploaded image (optionally cropped / resized)
2. ``original_container``  for PNG uploads, the critical chunks only
                           (drops ancillary chunks that broke decoding)
3. ``default_avatar``      the configured default avatar at avatar size
4. ``blank``               a solid grey image at avatar size
"""

import io
import logging
from pathlib import Path
from typing import Callable, List, Optional, Tuple, Union

from PIL import Image

from .errors import CharacterCardError, ImageDecodeError
from .metadata_handler import PNG_SIGNATURE, PNGMetadataHandler
from .models import AvatarResult, AvatarStrategy, CropBox

logger = logging.getLogger(__name__)

ImageSource = Union[bytes, str, Path]

DEFAULT_AVATAR_WIDTH = 512
DEFAULT_AVATAR_HEIGHT = 768
BLANK_COLOR = (128, 128, 128)


class AvatarProcessor:
    """Decode, crop, resize and re-encode avatar images to PNG."""

    def __init__(
        self,
        default_avatar_path: Path,
        width: int = DEFAULT_AVATAR_WIDTH,
        height: int = DEFAULT_AVATAR_HEIGHT,
    ):
        """
        Initialize processor.

        Args:
            default_avatar_path: Image used when the upload cannot be decoded
            width: Avatar width in pixels
            height: Avatar height in pixels
        """
        self.default_avatar_path = Path(default_avatar_path)
        self.size = (width, height)

    def process(
        self,
        source: ImageSource,
        crop: Optional[CropBox] = None,
        resize: Optional[bool] = None,
    ) -> AvatarResult:
        """
        Produce PNG bytes for ``source``.

        Args:
            source: Raw image bytes or a path to an image file
            crop: Optional crop rectangle
            resize: Resize to avatar dimensions; defaults to ``crop.want_resize``

        Returns:
            AvatarResult with image bytes and the strategy that produced them.
            Never raises for undecodable input.
        """
        if resize is None:
            resize = bool(crop and crop.want_resize)

        attempts: List[str] = []
        for strategy, attempt in self._strategies(source, crop, resize):
            try:
                image_bytes = attempt()
            except ImageDecodeError as e:
                attempts.append(f"{strategy.value}: {e}")
                logger.warning(f"Avatar strategy '{strategy.value}' failed: {e}")
                continue

            if strategy != AvatarStrategy.SOURCE:
                logger.warning(f"Using fallback avatar image (strategy: {strategy.value})")
            logger.debug(f"Avatar image size: {len(image_bytes)} bytes")
            return AvatarResult(image_bytes=image_bytes, strategy=strategy, attempts=attempts)

        # blank never fails
        raise RuntimeError("Avatar fallback chain exhausted")

    def _strategies(
        self,
        source: ImageSource,
        crop: Optional[CropBox],
        resize: bool,
    ) -> List[Tuple[AvatarStrategy, Callable[[], bytes]]]:
        strategies = [
            (AvatarStrategy.SOURCE, lambda: self.render(self._read_source(source), crop, resize)),
        ]
        if self._is_container(source):
            strategies.append(
                (AvatarStrategy.ORIGINAL_CONTAINER, lambda: self._render_original(source, crop, resize))
            )
        strategies.append(
            (AvatarStrategy.DEFAULT_AVATAR, lambda: self.render(self._read_source(self.default_avatar_path), None, True))
        )
        strategies.append((AvatarStrategy.BLANK, self.blank))
        return strategies

    def render(self, data: bytes, crop: Optional[CropBox] = None, resize: bool = False) -> bytes:
        """
        Decode ``data``, apply crop and resize, and re-encode as PNG.

        Raises:
            ImageDecodeError: data is not a decodable image
        """
        try:
            with Image.open(io.BytesIO(data)) as image:
                image.load()
                if crop:
                    image = self._crop(image, crop)
                if resize:
                    image = image.resize(self.size, Image.Resampling.LANCZOS)
                if image.mode not in ("RGB", "RGBA", "L", "LA", "P"):
                    image = image.convert("RGBA")

                output = io.BytesIO()
                image.save(output, format="PNG")
                return output.getvalue()
        except Exception as e:
            raise ImageDecodeError(f"{type(e).__name__}: {e}") from e

    def blank(self) -> bytes:
        """Create a plain grey PNG at avatar size."""
        image = Image.new("RGB", self.size, color=BLANK_COLOR)
        output = io.BytesIO()
        image.save(output, format="PNG")
        return output.getvalue()

    def _render_original(self, source: ImageSource, crop: Optional[CropBox], resize: bool) -> bytes:
        try:
            original = PNGMetadataHandler.strip_ancillary(self._read_source(source))
        except CharacterCardError as e:
            raise ImageDecodeError(f"Cannot extract original PNG image: {e}") from e
        logger.info(f"Attempting to extract image from original PNG ({len(original)} bytes)")
        return self.render(original, crop, resize)

    @staticmethod
    def _crop(image: Image.Image, crop: CropBox) -> Image.Image:
        """Crop with the rectangle clamped to the image bounds."""
        width, height = image.size
        left = min(crop.x, width)
        top = min(crop.y, height)
        right = min(crop.x + crop.width, width)
        bottom = min(crop.y + crop.height, height)
        if right <= left or bottom <= top:
            logger.warning(f"Crop {crop.model_dump()} is outside a {width}x{height} image, skipping crop")
            return image
        return image.crop((left, top, right, bottom))

    @staticmethod
    def _read_source(source: ImageSource) -> bytes:
        if isinstance(source, (bytes, bytearray)):
            return bytes(source)
        try:
            return Path(source).read_bytes()
        except OSError as e:
            raise ImageDecodeError(f"Failed to read image: {source}: {e}") from e

    @staticmethod
    def _is_container(source: ImageSource) -> bool:
        if isinstance(source, (bytes, bytearray)):
            return PNGMetadataHandler.has_signature(source)
        # upload files are often spooled without an extension
        try:
            with open(source, "rb") as f:
                header = f.read(len(PNG_SIGNATURE))
        except OSError:
            return False
        return PNGMetadataHandler.has_signature(header)
