from fastapi import APIRouter, Depends, File, HTTPException, UploadFile

from eduscan.models import ScanRequest
from eduscan.services.attendance import AttendanceController, get_controller
from qr_decoding.decoder import decode_frame, decode_image_bytes

router = APIRouter()


@router.post("/scan")
async def scan(payload: ScanRequest, controller: AttendanceController = Depends(get_controller)):
    return await controller.handle_scan(payload.payload)


@router.post("/scan/frame")
async def scan_frame(
    file: UploadFile = File(...),
    controller: AttendanceController = Depends(get_controller),
):
    if file.content_type not in ("image/jpeg", "image/png"):
        raise HTTPException(status_code=400, detail="Upload JPG/PNG only.")

    data = await file.read()
    frame = decode_image_bytes(data)
    if frame is None:
        raise HTTPException(status_code=400, detail="Invalid image data.")

    text, reason = decode_frame(frame)
    if text is None:
        # Nothing to report; the camera keeps sampling.
        return {"detected": False, "reason": reason}

    result = await controller.handle_scan(text)
    return {"detected": True, **result}
