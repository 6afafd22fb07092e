import base64
import io

from PIL import Image

JPEG_QUALITY = 80


def image_to_jpeg_bytes(image: Image.Image, quality: int = JPEG_QUALITY) -> bytes:
    buf = io.BytesIO()
    image.convert("RGB").save(buf, format="JPEG", quality=quality)
    return buf.getvalue()


def image_to_base64_jpeg(image: Image.Image, quality: int = JPEG_QUALITY) -> str:
    """Encode a frame the way every provider request carries it: JPEG, base64, ascii."""
    return base64.b64encode(image_to_jpeg_bytes(image, quality)).decode("ascii")


def decode_png(data: bytes) -> Image.Image:
    """
    Decode a raw screencap payload. Raises ValueError on empty or unreadable data.
    """
    if not data:
        raise ValueError("empty_screenshot")
    try:
        image = Image.open(io.BytesIO(data))
        image.load()
    except (OSError, Image.DecompressionBombError) as exc:
        raise ValueError(f"invalid_screenshot: {exc}") from exc
    return image
