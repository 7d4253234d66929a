import threading

from loguru import logger
import numpy as np
from mss import mss


class ScreenCapture:
    """MSS-based capture of a screen region as BGR frames"""

    def __init__(self):
        self._thread_local = threading.local()
        self.monitor = None

    def _get_sct(self):
        """Get or create MSS instance for current thread"""
        if not hasattr(self._thread_local, "sct"):
            self._thread_local.sct = mss()
        return self._thread_local.sct

    @property
    def configured(self) -> bool:
        return self.monitor is not None

    def set_region(self, left, top, width, height):
        """Configure capture region"""
        self.monitor = {"top": top, "left": left, "width": width, "height": height}
        logger.debug(f"Capture region set to {width}x{height} at ({left}, {top})")

    def capture(self) -> np.ndarray:
        """Capture and return as numpy array (H, W, 3) in BGR order"""
        if self.monitor is None:
            raise RuntimeError("Must call set_region() first")

        # Get thread-specific MSS instance
        sct = self._get_sct()
        sct_img = sct.grab(self.monitor)
        img = np.array(sct_img, dtype=np.uint8)
        return np.ascontiguousarray(img[:, :, :3])  # BGRA -> BGR

    def close(self) -> None:
        if hasattr(self._thread_local, "sct"):
            self._thread_local.sct.close()
            del self._thread_local.sct
