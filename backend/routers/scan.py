import logging
import os
from typing import Optional

from fastapi import APIRouter, Depends, File, Form, HTTPException, UploadFile, status
from fastapi.concurrency import run_in_threadpool
from sqlalchemy import select
from sqlalchemy.ext.asyncio import AsyncSession

from core.auth import require_capability
from core.ocr import EasyOcrReader, InvalidImage, OcrUnavailable, get_ocr_reader
from core.packing_slip import match_inventory, parse_packing_slip
from core.roles import Actor, Capability
from db.database import get_async_session, InventoryItem as InventoryItemModel
from schemas.shipments import ScanLine, ScanResult

logger = logging.getLogger(__name__)

router = APIRouter()

ALLOWED_EXTS = {"jpg", "jpeg", "png", "webp", "heic", "heif"}
MIN_UPLOAD_BYTES = 100
MAX_UPLOAD_BYTES = 25 * 1024 * 1024


def validate_upload(filename: str, content_type: str, size: int) -> None:
    content_type = (content_type or "").strip().lower()
    ext = os.path.splitext(filename or "")[1].lower().lstrip(".")
    if content_type and content_type != "application/octet-stream" and not content_type.startswith("image/"):
        raise HTTPException(status_code=status.HTTP_400_BAD_REQUEST, detail="File must be an image")
    if (not content_type or content_type == "application/octet-stream") and ext not in ALLOWED_EXTS:
        raise HTTPException(status_code=status.HTTP_400_BAD_REQUEST, detail="File must be an image")
    if size < MIN_UPLOAD_BYTES:
        raise HTTPException(
            status_code=status.HTTP_400_BAD_REQUEST,
            detail="Image file appears to be corrupted or too small",
        )
    if size > MAX_UPLOAD_BYTES:
        raise HTTPException(status_code=status.HTTP_400_BAD_REQUEST, detail="Image size must be less than 25MB")


@router.post("/packing-slip", response_model=ScanResult)
async def scan_packing_slip(
    file: Optional[UploadFile] = File(None),
    text: Optional[str] = Form(None),
    actor: Actor = Depends(require_capability(Capability.SUBMIT_REQUEST)),
    reader: EasyOcrReader = Depends(get_ocr_reader),
    db: AsyncSession = Depends(get_async_session),
):
    """
    Suggest shipment lines from a packing slip photo (or already-extracted text).
    Nothing is written; the reviewed lines are submitted through POST /shipments.
    """
    if file is not None:
        data = await file.read()
        validate_upload(file.filename or "", file.content_type or "", len(data))
        try:
            raw_text = await run_in_threadpool(reader.read_text, data)
        except InvalidImage as e:
            raise HTTPException(status_code=status.HTTP_400_BAD_REQUEST, detail=str(e))
        except OcrUnavailable as e:
            logger.error("[scan] %s", e)
            raise HTTPException(status_code=status.HTTP_503_SERVICE_UNAVAILABLE, detail="OCR is not available on this server")
    elif text is not None and text.strip():
        raw_text = text
    else:
        raise HTTPException(status_code=status.HTTP_400_BAD_REQUEST, detail="Upload an image or provide text")

    parsed = parse_packing_slip(raw_text)
    res = await db.execute(select(InventoryItemModel).where(InventoryItemModel.is_active.is_(True)))
    matched = match_inventory(parsed.lines, res.scalars().all())
    logger.info("[scan] %s scanned slip %r: %d line(s)", actor.email, parsed.shipment_id, len(matched))
    return ScanResult(
        shipment_id=parsed.shipment_id,
        lines=[ScanLine(**vars(ln)) for ln in matched],
        raw_text=raw_text,
    )
