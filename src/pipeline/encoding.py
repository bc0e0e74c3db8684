"""
Sticker Encoding

Converts a composited image into a WebP sticker carrying the sticker-pack
EXIF payload that messaging clients read to show the pack name and author.
"""

import io
import json
import uuid
from dataclasses import dataclass, field
from typing import List

from PIL import Image, ImageColor, ImageOps, TiffImagePlugin, TiffTags

from src.core.config import Settings

STICKER_SIZE = 512

# Private EXIF tag messaging clients read the sticker-pack JSON from
STICKER_PACK_TAG = 0x5741
_TIFF_HEADER = b"II*\x00\x08\x00\x00\x00"


class StickerType:
    FULL = "full"
    CROP = "crop"


@dataclass(frozen=True)
class StickerMetadata:
    """Fixed sticker metadata applied to every encoded sticker."""
    pack: str = "Sticker Bot"
    author: str = "Seu Nome"
    type: str = StickerType.FULL
    quality: int = 100
    background: str = "transparent"
    emojis: List[str] = field(default_factory=list)

    @classmethod
    def from_settings(cls, settings: Settings) -> "StickerMetadata":
        return cls(
            pack=settings.STICKER_PACK,
            author=settings.STICKER_AUTHOR,
            type=settings.STICKER_TYPE,
            quality=settings.STICKER_QUALITY,
            background=settings.STICKER_BACKGROUND,
            emojis=settings.sticker_emojis,
        )

    @property
    def pack_id(self) -> str:
        return str(uuid.uuid5(uuid.NAMESPACE_URL, f"sticker-pack:{self.pack}:{self.author}"))


def build_exif(metadata: StickerMetadata) -> bytes:
    payload = json.dumps({
        "sticker-pack-id": metadata.pack_id,
        "sticker-pack-name": metadata.pack,
        "sticker-pack-publisher": metadata.author,
        "emojis": metadata.emojis,
    }).encode("utf-8")

    ifd = TiffImagePlugin.ImageFileDirectory_v2()
    ifd.tagtype[STICKER_PACK_TAG] = TiffTags.UNDEFINED
    ifd[STICKER_PACK_TAG] = payload
    # Little-endian TIFF header, first IFD right after it at offset 8
    return _TIFF_HEADER + ifd.tobytes(offset=8)


def _background_color(background: str):
    if background == "transparent":
        return (0, 0, 0, 0)
    return ImageColor.getcolor(background, "RGBA")


def encode_sticker(image_bytes: bytes, metadata: StickerMetadata) -> bytes:
    """
    Encode an image as a 512x512 WebP sticker.

    `full` fits the whole image inside the square on the background fill,
    `crop` center-crops it to the square.
    """
    image = Image.open(io.BytesIO(image_bytes))
    image.load()
    image = image.convert("RGBA")

    canvas = Image.new("RGBA", (STICKER_SIZE, STICKER_SIZE), _background_color(metadata.background))
    if metadata.type == StickerType.CROP:
        fitted = ImageOps.fit(image, (STICKER_SIZE, STICKER_SIZE), Image.Resampling.LANCZOS)
        canvas.alpha_composite(fitted)
    else:
        fitted = ImageOps.contain(image, (STICKER_SIZE, STICKER_SIZE), Image.Resampling.LANCZOS)
        offset = ((STICKER_SIZE - fitted.width) // 2, (STICKER_SIZE - fitted.height) // 2)
        canvas.alpha_composite(fitted, dest=offset)

    buffer = io.BytesIO()
    canvas.save(buffer, format="WEBP", quality=metadata.quality, exif=build_exif(metadata))
    return buffer.getvalue()
