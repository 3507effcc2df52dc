"""
PNG Metadata Handler
===================

Handles reading and writing tEXt chunks in PNG images for character card metadata.

Works on the raw chunk stream rather than decoding pixels, so embedding a card
never touches IDAT, PLTE or any other chunk.
"""

import base64
import binascii
import logging
import struct
import zlib
from dataclasses import dataclass, field
from typing import List, Optional, Tuple

from .errors import MalformedContainerError, NotACharacterCardError

logger = logging.getLogger(__name__)

PNG_SIGNATURE = b"\x89PNG\r\n\x1a\n"

TEXT_CHUNK = "tEXt"
END_CHUNK = "IEND"
# Chunks needed to render the image; everything else is ancillary
CRITICAL_CHUNKS = ("IHDR", "PLTE", "tRNS", "IDAT", "IEND")


@dataclass
class PngChunk:
    """A single chunk of the PNG stream (CRC already verified)."""
    name: str
    data: bytes

    def to_bytes(self) -> bytes:
        chunk_type = self.name.encode("latin-1")
        crc = zlib.crc32(chunk_type + self.data) & 0xFFFFFFFF
        return struct.pack(">I", len(self.data)) + chunk_type + self.data + struct.pack(">I", crc)


@dataclass
class ContainerReport:
    """Result of the diagnostic chunk scan."""
    chunk_names: List[str] = field(default_factory=list)
    text_keywords: List[str] = field(default_factory=list)

    @property
    def has_text_chunks(self) -> bool:
        return bool(self.text_keywords)

    @property
    def has_card_chunk(self) -> bool:
        return any(k.lower() in PNGMetadataHandler.CARD_KEYWORDS for k in self.text_keywords)


class PNGMetadataHandler:
    """Handle PNG tEXt chunk operations for character card metadata."""

    CARD_KEYWORDS = ("chara", "ccv3")

    @staticmethod
    def has_signature(png_data: bytes) -> bool:
        return png_data[:8] == PNG_SIGNATURE

    @staticmethod
    def read_chunks(png_data: bytes) -> List[PngChunk]:
        """
        Split PNG data into chunks, stopping at IEND.

        Raises:
            MalformedContainerError: missing signature, truncated chunk,
                CRC mismatch or missing IEND
        """
        if not PNGMetadataHandler.has_signature(png_data):
            raise MalformedContainerError("Data does not start with the PNG signature")

        chunks = []
        offset = len(PNG_SIGNATURE)
        total = len(png_data)
        while offset < total:
            if offset + 8 > total:
                raise MalformedContainerError(f"Truncated chunk header at offset {offset}")
            length, chunk_type = struct.unpack(">I4s", png_data[offset:offset + 8])
            data_start = offset + 8
            data_end = data_start + length
            if data_end + 4 > total:
                raise MalformedContainerError(
                    f"Truncated chunk {chunk_type!r} at offset {offset} (declared length {length})"
                )
            data = png_data[data_start:data_end]
            (crc,) = struct.unpack(">I", png_data[data_end:data_end + 4])
            if zlib.crc32(chunk_type + data) & 0xFFFFFFFF != crc:
                raise MalformedContainerError(f"CRC values for {chunk_type!r} header do not match")

            name = chunk_type.decode("latin-1")
            chunks.append(PngChunk(name, data))
            offset = data_end + 4
            if name == END_CHUNK:
                return chunks

        raise MalformedContainerError("PNG stream ended without an IEND chunk")

    @staticmethod
    def write_chunks(chunks: List[PngChunk]) -> bytes:
        return PNG_SIGNATURE + b"".join(chunk.to_bytes() for chunk in chunks)

    @staticmethod
    def parse_text_chunk(chunk: PngChunk) -> Tuple[str, str]:
        """Split tEXt data into (keyword, text)."""
        keyword, sep, text = chunk.data.partition(b"\x00")
        if not sep:
            raise MalformedContainerError("tEXt chunk has no keyword separator")
        return keyword.decode("latin-1"), text.decode("latin-1")

    @staticmethod
    def build_text_chunk(keyword: str, text: str) -> PngChunk:
        if not 1 <= len(keyword) <= 79:
            raise ValueError(f"tEXt keyword must be 1-79 characters: {keyword!r}")
        return PngChunk(TEXT_CHUNK, keyword.encode("latin-1") + b"\x00" + text.encode("latin-1"))

    @classmethod
    def read_text_chunks(cls, png_data: bytes) -> List[Tuple[str, str]]:
        """Return every (keyword, text) pair in stream order."""
        return [
            cls.parse_text_chunk(chunk)
            for chunk in cls.read_chunks(png_data)
            if chunk.name == TEXT_CHUNK
        ]

    @classmethod
    def read_card_chunk(cls, png_data: bytes) -> Tuple[str, str]:
        """
        Find the first 'chara' or 'ccv3' tEXt chunk (case-insensitive).

        Returns:
            Tuple of (keyword, base64 text) as stored

        Raises:
            MalformedContainerError: PNG stream cannot be parsed
            NotACharacterCardError: no card chunk present
        """
        for keyword, text in cls.read_text_chunks(png_data):
            if keyword.lower() in cls.CARD_KEYWORDS:
                logger.debug(f"Found tEXt chunk with keyword '{keyword}'")
                return keyword, text
        raise NotACharacterCardError()

    @classmethod
    def decode(cls, png_data: bytes) -> str:
        """
        Extract the embedded character JSON text from PNG data.

        Character cards store base64-encoded UTF-8 JSON in the tEXt chunk,
        so the chunk text is base64-decoded before returning.
        """
        keyword, encoded = cls.read_card_chunk(png_data)
        try:
            return base64.b64decode(encoded, validate=True).decode("utf-8")
        except (binascii.Error, UnicodeDecodeError) as e:
            raise MalformedContainerError(f"Chunk '{keyword}' does not hold base64 UTF-8 data: {e}")

    @classmethod
    def encode(cls, png_data: bytes, payload: str, keyword: str = "chara") -> bytes:
        """
        Embed payload into PNG data under ``keyword``.

        Existing 'chara'/'ccv3' tEXt chunks are removed and the new chunk is
        placed immediately before IEND. All other chunks are copied verbatim.

        Args:
            png_data: Original PNG file data as bytes
            payload: Text data to embed (will be base64-encoded)
            keyword: tEXt chunk keyword ('chara' or 'ccv3')

        Returns:
            Modified PNG data with embedded metadata
        """
        chunks = [
            chunk for chunk in cls.read_chunks(png_data)
            if not cls._is_card_chunk(chunk)
        ]
        encoded = base64.b64encode(payload.encode("utf-8")).decode("ascii")
        chunks.insert(len(chunks) - 1, cls.build_text_chunk(keyword, encoded))
        return cls.write_chunks(chunks)

    @classmethod
    def inspect(cls, png_data: bytes) -> ContainerReport:
        """
        Diagnostic scan listing chunk names and tEXt keywords.

        Unparseable tEXt chunks are reported with an empty keyword.
        """
        report = ContainerReport()
        for chunk in cls.read_chunks(png_data):
            report.chunk_names.append(chunk.name)
            if chunk.name == TEXT_CHUNK:
                try:
                    keyword, _ = cls.parse_text_chunk(chunk)
                except MalformedContainerError:
                    keyword = ""
                report.text_keywords.append(keyword)
        logger.debug(f"PNG chunks found: {report.chunk_names}")
        return report

    @classmethod
    def strip_ancillary(cls, png_data: bytes) -> bytes:
        """Rebuild the PNG keeping only the chunks needed to render pixels."""
        chunks = [c for c in cls.read_chunks(png_data) if c.name in CRITICAL_CHUNKS]
        return cls.write_chunks(chunks)

    @classmethod
    def _is_card_chunk(cls, chunk: PngChunk) -> bool:
        if chunk.name != TEXT_CHUNK:
            return False
        keyword, _, _ = chunk.data.partition(b"\x00")
        return keyword.decode("latin-1").lower() in cls.CARD_KEYWORDS

    @classmethod
    def try_decode(cls, png_data: bytes) -> Optional[str]:
        """Like ``decode`` but returns None when no card can be read."""
        try:
            return cls.decode(png_data)
        except (MalformedContainerError, NotACharacterCardError) as e:
            logger.debug(f"No character card data: {e}")
            return None
