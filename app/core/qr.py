import base64
from io import BytesIO

import qrcode


def generate_qr_png(data: str) -> bytes:
    """Render ``data`` as a QR code and return the PNG bytes."""
    qr = qrcode.QRCode(
        version=None,  # size picked by fit=True; tokens are a few hundred chars
        error_correction=qrcode.constants.ERROR_CORRECT_M,
        box_size=10,
        border=4,
    )
    qr.add_data(data)
    qr.make(fit=True)

    img = qr.make_image(fill_color='black', back_color='white')

    buffered = BytesIO()
    img.save(buffered, format='PNG')
    return buffered.getvalue()


def generate_qr_base64(data: str) -> str:
    return base64.b64encode(generate_qr_png(data)).decode('utf-8')
