"""
QR Image Renderer

Turns an EMV payload string into a PNG QR code, either as raw bytes for
the image endpoint or as a data URL for embedding in a page.
"""
import base64
import io

import qrcode
from PIL import Image
from qrcode.constants import ERROR_CORRECT_M

QR_IMAGE_WIDTH = 256
QR_IMAGE_MARGIN = 2


def render_qr_png(payload: str, width: int = QR_IMAGE_WIDTH, border: int = QR_IMAGE_MARGIN) -> bytes:
    """
    Render a payload as black-on-white PNG bytes, width x width pixels.

    The margin is counted in modules and included in the width.
    """
    qr = qrcode.QRCode(error_correction=ERROR_CORRECT_M, box_size=1, border=border)
    qr.add_data(payload)
    qr.make(fit=True)

    buffer = io.BytesIO()
    qr.make_image(fill_color="black", back_color="white").save(buffer, format="PNG")
    buffer.seek(0)

    image = Image.open(buffer).convert("L").resize((width, width), Image.Resampling.NEAREST)
    output = io.BytesIO()
    image.save(output, format="PNG")
    return output.getvalue()


def render_qr_data_url(payload: str) -> str:
    """Render a payload as a data:image/png;base64 URL."""
    encoded = base64.b64encode(render_qr_png(payload)).decode("ascii")
    return f"data:image/png;base64,{encoded}"
