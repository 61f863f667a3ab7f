"""Gate pass slip content, QR codes and printable renderings."""
import base64
import html
import logging
import re
from io import BytesIO
from typing import List, Optional

import cv2
import numpy as np
import qrcode
import requests
from pydantic import BaseModel, Field
from reportlab.lib.units import mm
from reportlab.lib.utils import ImageReader
from reportlab.pdfgen import canvas

from core.errors import SlipGenerationError

logger = logging.getLogger(__name__)

SLIP_WIDTH = 32  # characters on an 80mm thermal roll at 10pt
GEMINI_ENDPOINT = "https://generativelanguage.googleapis.com/v1beta/models/{model}:generateContent"
REQUEST_TIMEOUT = 30


class SlipItem(BaseModel):
    product_name: str
    quantity: int


class GatePassSlipInput(BaseModel):
    items: List[SlipItem] = Field(..., min_length=1)
    destination: str
    reason: str
    date: str
    user_name: str
    qr_code_data: str
    gate_pass_number: int = 0
    shop_name: str = ""


SLIP_PROMPT = """You are generating a gate pass for outgoing products.
The pass is printed on an 80mm thermal printer: keep it concise, use plain
text only, lines of at most {width} characters, no Markdown, no code fences.

Layout:
1. {shop_line}A header line "GATE PASS".
2. "Gate Pass No.: {gate_pass_number}".
3. Destination, Reason, Date and "Authorized by" lines.
4. An "Items:" list with product name and quantity for each item, then the
   total quantity.
5. A placeholder line "[QR: {qr_code_data}]" where the QR code is printed.
6. A footer with a "Receiver's Signature" line.

Data:
Destination: {destination}
Reason: {reason}
Date: {date}
Authorized by: {user_name}
Items:
{items}
"""


class SlipGenerator:
    def generate(self, data: GatePassSlipInput) -> str:
        raise NotImplementedError


class PlainTextSlipGenerator(SlipGenerator):
    """Deterministic slip text, used when no AI service is configured."""

    def generate(self, data):
        rule = "-" * SLIP_WIDTH
        lines = []
        if data.shop_name:
            lines.append(data.shop_name.upper().center(SLIP_WIDTH).rstrip())
        lines += [
            "GATE PASS".center(SLIP_WIDTH).rstrip(),
            rule,
            f"Gate Pass No.: {data.gate_pass_number}",
            f"Date: {data.date}",
            f"Destination: {data.destination}",
            f"Reason: {data.reason}",
            f"Authorized by: {data.user_name}",
            rule,
            "Items:",
        ]
        for item in data.items:
            lines.append(f"- {item.product_name}")
            lines.append(f"  Qty: {item.quantity}")
        lines += [
            rule,
            f"Total Qty: {sum(item.quantity for item in data.items)}",
            f"Pass ID: {data.qr_code_data}",
            "",
            "Receiver's Signature:",
            "",
            "________________________",
            rule,
        ]
        return "\n".join(lines)


class HostedSlipGenerator(SlipGenerator):
    """One prompt round-trip to the hosted text model; output is the slip text."""

    def __init__(self, api_key: str, model: str = "gemini-1.5-flash", session=None):
        self.api_key = api_key
        self.model = model
        self.session = session or requests.Session()

    def build_prompt(self, data: GatePassSlipInput) -> str:
        items = "\n".join(f"- {i.product_name}: {i.quantity}" for i in data.items)
        return SLIP_PROMPT.format(
            width=SLIP_WIDTH,
            shop_line=f'The shop name "{data.shop_name}" on its own first line, then ' if data.shop_name else "",
            gate_pass_number=data.gate_pass_number,
            qr_code_data=data.qr_code_data,
            destination=data.destination,
            reason=data.reason,
            date=data.date,
            user_name=data.user_name,
            items=items,
        )

    def generate(self, data):
        payload = {"contents": [{"parts": [{"text": self.build_prompt(data)}]}]}
        try:
            response = self.session.post(
                GEMINI_ENDPOINT.format(model=self.model),
                params={"key": self.api_key},
                json=payload,
                timeout=REQUEST_TIMEOUT,
            )
        except requests.RequestException as e:
            raise SlipGenerationError(f"AI service unreachable: {e}") from e
        if response.status_code >= 400:
            logger.error("Slip generation failed: %s %s", response.status_code, response.text[:300])
            raise SlipGenerationError(f"AI service error ({response.status_code})")
        try:
            parts = response.json()["candidates"][0]["content"]["parts"]
            text = "".join(part.get("text", "") for part in parts)
        except (ValueError, KeyError, IndexError, TypeError) as e:
            raise SlipGenerationError("AI service returned an unexpected response.") from e
        text = strip_code_fences(text)
        if not text:
            raise SlipGenerationError("AI failed to generate gate pass content.")
        return text


def strip_code_fences(text: str) -> str:
    text = (text or "").strip()
    text = re.sub(r"^```[a-zA-Z]*\n?", "", text)
    text = re.sub(r"\n?```$", "", text)
    return text.strip()


# ---------------------------------------------------------------------------
# QR codes
# ---------------------------------------------------------------------------

def qr_png(payload: str, box_size: int = 8) -> bytes:
    """Render ``payload`` as a PNG QR code."""
    qr = qrcode.QRCode(
        version=None,
        error_correction=qrcode.constants.ERROR_CORRECT_L,
        box_size=box_size,
        border=4,
    )
    qr.add_data(payload)
    qr.make(fit=True)
    img = qr.make_image(fill_color="black", back_color="white")
    buf = BytesIO()
    img.save(buf, format="PNG")
    return buf.getvalue()


def decode_qr(image_bytes: bytes) -> Optional[str]:
    """Return the text of the first QR code in an image, or None."""
    if not image_bytes:
        return None
    arr = np.frombuffer(image_bytes, dtype=np.uint8)
    img = cv2.imdecode(arr, cv2.IMREAD_COLOR)
    if img is None:
        return None
    text, _, _ = cv2.QRCodeDetector().detectAndDecode(img)
    return text.strip() or None


# ---------------------------------------------------------------------------
# Printable renderings
# ---------------------------------------------------------------------------

PRINT_CSS = """
@page { size: 80mm auto; margin: 2mm; }
body { font-family: "Courier New", Courier, monospace; margin: 0; padding: 0;
       font-size: 10pt; line-height: 1.15; width: 76mm; box-sizing: border-box; }
.pass-line { margin: 0; padding: 0; white-space: pre; overflow-wrap: break-word; }
.shop-name-line { font-weight: bold; }
.qr-code-container { margin-top: 5mm; text-align: center; page-break-inside: avoid; }
.qr-code-container img { max-width: 35mm; max-height: 35mm; display: block; margin: 0 auto; }
"""


def slip_print_html(content: str, qr_code_data: str, shop_name: str = "", auto_print: bool = True) -> str:
    """HTML document for the browser print dialog (80mm thermal layout)."""
    shop_key = shop_name.strip().upper()
    rows = []
    for line in content.split("\n"):
        escaped = html.escape(line, quote=True)
        css = "pass-line"
        if shop_key and line.strip().upper() == shop_key:
            css += " shop-name-line"
        rows.append(f'<div class="{css}">{escaped}</div>')
    qr_html = ""
    if qr_code_data:
        b64 = base64.b64encode(qr_png(qr_code_data)).decode()
        alt = html.escape(f"QR Code for {qr_code_data[:15]}", quote=True)
        qr_html = f'<div class="qr-code-container"><img src="data:image/png;base64,{b64}" alt="{alt}" /></div>'
    script = "<script>setTimeout(function(){window.focus();window.print();},250);</script>" if auto_print else ""
    return (
        "<html><head><title>Gate Pass</title>"
        f"<style>{PRINT_CSS}</style></head><body>"
        f'<div class="content-wrapper">{"".join(rows)}</div>{qr_html}{script}'
        "</body></html>"
    )


def slip_pdf(content: str, qr_code_data: str, shop_name: str = "") -> bytes:
    """80mm wide PDF of the slip with the QR code underneath."""
    lines = content.split("\n")
    line_height = 4.2 * mm
    qr_size = 35 * mm if qr_code_data else 0
    width = 80 * mm
    height = (len(lines) + 2) * line_height + qr_size + 10 * mm

    buf = BytesIO()
    pdf = canvas.Canvas(buf, pagesize=(width, height))
    pdf.setTitle("Gate Pass")
    y = height - 6 * mm
    shop_key = shop_name.strip().upper()
    for line in lines:
        bold = bool(shop_key) and line.strip().upper() == shop_key
        pdf.setFont("Courier-Bold" if bold else "Courier", 8)
        pdf.drawString(3 * mm, y, line)
        y -= line_height
    if qr_code_data:
        qr_img = ImageReader(BytesIO(qr_png(qr_code_data)))
        pdf.drawImage(qr_img, (width - qr_size) / 2, y - qr_size, qr_size, qr_size)
    pdf.showPage()
    pdf.save()
    return buf.getvalue()
