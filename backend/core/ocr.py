import io
import logging
import threading
from typing import Optional

from PIL import Image, ImageOps, UnidentifiedImageError

from core.config import settings

logger = logging.getLogger(__name__)

MAX_SIDE = 2000


class OcrUnavailable(RuntimeError):
    """The OCR engine (easyocr) is not installed or failed to start."""


class InvalidImage(ValueError):
    pass


def normalize_image(data: bytes, max_side: int = MAX_SIDE) -> Image.Image:
    """Decode an upload, apply EXIF orientation, convert to RGB and cap the longest side."""
    try:
        pil = Image.open(io.BytesIO(data))
        pil.load()
    except (UnidentifiedImageError, OSError) as e:
        raise InvalidImage(f"Could not read image: {e}") from e

    pil = ImageOps.exif_transpose(pil).convert("RGB")
    w, h = pil.size
    longest = max(w, h)
    if longest > max_side:
        s = max_side / longest
        pil = pil.resize((int(w * s), int(h * s)), Image.LANCZOS)
    return pil


def group_into_lines(detections: list[dict], tolerance: float = 0.6) -> list[str]:
    """
    Join word boxes that sit on the same row into text lines, left to right.

    Each detection is {"text", "conf", "bbox": {"x","y","w","h"}}. Two boxes
    share a row when their vertical centres are closer than `tolerance` times
    the row's box height.
    """
    rows: list[list[dict]] = []
    for det in sorted(detections, key=lambda d: d["bbox"]["y"] + d["bbox"]["h"] / 2):
        cy = det["bbox"]["y"] + det["bbox"]["h"] / 2
        if rows:
            last = rows[-1]
            ref = last[0]["bbox"]
            ref_cy = ref["y"] + ref["h"] / 2
            if abs(cy - ref_cy) <= max(ref["h"], 1) * tolerance:
                last.append(det)
                continue
        rows.append([det])

    lines = []
    for row in rows:
        row.sort(key=lambda d: d["bbox"]["x"])
        text = "  ".join(d["text"].strip() for d in row if d["text"].strip())
        if text:
            lines.append(text)
    return lines


class EasyOcrReader:
    def __init__(self, langs: Optional[list[str]] = None):
        self.langs = langs or settings.ocr_langs
        self._reader = None
        self._lock = threading.Lock()

    def _get_reader(self):
        if self._reader is None:
            with self._lock:
                if self._reader is None:
                    try:
                        import easyocr
                    except ImportError as e:
                        raise OcrUnavailable(f"easyocr not available: {e}") from e
                    logger.info("Loading easyocr reader for %s", self.langs)
                    self._reader = easyocr.Reader(self.langs, gpu=False, verbose=False)
        return self._reader

    def read(self, pil: Image.Image) -> list[dict]:
        import numpy as np

        reader = self._get_reader()
        res = reader.readtext(np.array(pil), detail=1, paragraph=False)
        out = []
        for box, text, conf in res:
            xs = [int(p[0]) for p in box]
            ys = [int(p[1]) for p in box]
            x0, y0, x1, y1 = min(xs), min(ys), max(xs), max(ys)
            out.append({"text": str(text), "conf": float(conf), "bbox": {"x": x0, "y": y0, "w": x1 - x0, "h": y1 - y0}})
        return out

    def read_text(self, data: bytes) -> str:
        """Blocking: decode, OCR and return the slip as newline-separated rows."""
        return "\n".join(group_into_lines(self.read(normalize_image(data))))


_reader: Optional[EasyOcrReader] = None


def get_ocr_reader() -> EasyOcrReader:
    global _reader
    if _reader is None:
        _reader = EasyOcrReader()
    return _reader
