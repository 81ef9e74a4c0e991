import cv2 # type: ignore
import numpy as np # type: ignore

# OpenCV's built-in detector; no extra model files needed
QR_DETECTOR = cv2.QRCodeDetector()


def decode_image_bytes(data: bytes):
    """
    Returns the BGR frame for an uploaded JPG/PNG, or None when the bytes
    are not a decodable image.
    """
    if not data:
        return None
    img_array = np.frombuffer(data, np.uint8)
    return cv2.imdecode(img_array, cv2.IMREAD_COLOR)


def decode_frame(frame_bgr):
    """
    Returns:
      (payload:str|None, reason:str|None)
    """
    if frame_bgr is None or frame_bgr.size == 0:
        return None, "empty_frame"

    gray = cv2.cvtColor(frame_bgr, cv2.COLOR_BGR2GRAY)
    try:
        text, points, _ = QR_DETECTOR.detectAndDecode(gray)
    except cv2.error:
        return None, "decode_error"

    if points is None:
        return None, "no_qr"
    if not text:
        # located but unreadable (blur, glare, partial code)
        return None, "unreadable"
    return text, None
