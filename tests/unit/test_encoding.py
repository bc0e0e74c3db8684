import io
import json
import struct

from PIL import Image

from src.core.config import Settings
from src.pipeline.encoding import STICKER_PACK_TAG, StickerMetadata, build_exif, encode_sticker


def test_encodes_512_webp(png_bytes):
    data = encode_sticker(png_bytes, StickerMetadata())
    image = Image.open(io.BytesIO(data))

    assert image.format == "WEBP"
    assert image.size == (512, 512)


def test_full_type_keeps_whole_image_on_transparent_square(image_factory):
    data = encode_sticker(image_factory(size=(400, 100)), StickerMetadata())
    image = Image.open(io.BytesIO(data)).convert("RGBA")

    assert image.getpixel((256, 10))[3] == 0
    assert image.getpixel((256, 256))[3] == 255


def test_crop_type_fills_square(image_factory):
    data = encode_sticker(image_factory(size=(400, 100)), StickerMetadata(type="crop"))
    image = Image.open(io.BytesIO(data)).convert("RGBA")

    assert image.size == (512, 512)
    assert image.getpixel((256, 10))[3] == 255


def test_background_color_fill(image_factory):
    data = encode_sticker(image_factory(size=(400, 100)), StickerMetadata(background="#ffffff"))
    image = Image.open(io.BytesIO(data)).convert("RGBA")

    r, g, b, a = image.getpixel((256, 10))
    assert a == 255
    assert min(r, g, b) > 240


def test_exif_payload_carries_pack_metadata():
    metadata = StickerMetadata(pack="Sticker Bot", author="Seu Nome", emojis=["😀"])
    exif = build_exif(metadata)
    parsed = Image.Exif()
    parsed.load(exif)
    payload = json.loads(parsed[STICKER_PACK_TAG])

    assert exif[:4] == b"II*\x00"
    assert list(parsed.keys()) == [STICKER_PACK_TAG]
    assert payload["sticker-pack-name"] == "Sticker Bot"
    assert payload["sticker-pack-publisher"] == "Seu Nome"
    assert payload["emojis"] == ["😀"]
    assert payload["sticker-pack-id"] == metadata.pack_id


def test_exif_ifd_layout():
    exif = build_exif(StickerMetadata())

    assert struct.unpack_from("<H", exif, 8) == (1,)
    # tag, type UNDEFINED, count, value offset
    tag, tag_type, count, value_offset = struct.unpack_from("<HHII", exif, 10)
    assert (tag, tag_type, value_offset) == (STICKER_PACK_TAG, 7, 26)
    assert json.loads(exif[26:26 + count])["sticker-pack-name"] == "Sticker Bot"
    # no next IFD
    assert exif[22:26] == b"\x00\x00\x00\x00"


def test_exif_is_embedded_in_sticker(png_bytes):
    data = encode_sticker(png_bytes, StickerMetadata(pack="My Pack"))
    image = Image.open(io.BytesIO(data))

    payload = json.loads(image.getexif()[STICKER_PACK_TAG])
    assert payload["sticker-pack-name"] == "My Pack"


def test_pack_id_is_stable():
    assert StickerMetadata(pack="A").pack_id == StickerMetadata(pack="A").pack_id
    assert StickerMetadata(pack="A").pack_id != StickerMetadata(pack="B").pack_id


def test_metadata_from_settings():
    settings = Settings(STICKER_PACK="Pack", STICKER_AUTHOR="Me", STICKER_EMOJIS="😀, 🎉")
    metadata = StickerMetadata.from_settings(settings)

    assert metadata.pack == "Pack"
    assert metadata.author == "Me"
    assert metadata.quality == 100
    assert metadata.type == "full"
    assert metadata.background == "transparent"
    assert metadata.emojis == ["😀", "🎉"]
