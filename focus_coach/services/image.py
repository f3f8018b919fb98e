import asyncio
import logging
from datetime import datetime
from pathlib import Path
from typing import List, Optional
import mss
from PIL import Image

from focus_coach.config.settings import settings
from focus_coach.services.errors import ImageError

logger = logging.getLogger(__name__)

class ScreenshotError(ImageError):
    """Exception raised when screenshot capture fails"""
    pass

class CompressionError(ImageError):
    """Exception raised when image compression fails"""
    pass

class ImageManager:
    """Captures the screen artifact handed to the focus classifier"""

    def __init__(self, temp_dir: Optional[Path] = None):
        """Initialize the image manager

        Args:
            temp_dir: Optional directory for screenshots. Defaults to settings.TEMP_DIR
        """
        self.temp_dir = Path(temp_dir or settings.TEMP_DIR)
        self.temp_dir.mkdir(parents=True, exist_ok=True)

        try:
            self.sct = mss.mss()
        except Exception as e:
            raise ScreenshotError(f"Failed to initialize screenshot manager: {e}")

        # Classification only needs a legible thumbnail of the screen
        self.JPEG_QUALITY = 70
        self.MAX_DIMENSION = 1280
        self.COMPRESSION_FORMAT = "JPEG"

        self.session_files: List[Path] = []
        self._counter = 0

    async def capture_screenshot(self) -> Path:
        """Capture and shrink a screenshot of the primary monitor

        Returns:
            Path: Path to the JPEG screenshot

        Raises:
            ScreenshotError: If screenshot capture fails
        """
        try:
            try:
                monitors = self.sct.monitors
                screenshot = self.sct.grab(monitors[1] if len(monitors) > 1 else monitors[0])
            except Exception as e:
                raise ScreenshotError(f"Failed to grab screenshot: {e}")

            try:
                img = Image.frombytes('RGB', screenshot.size, screenshot.bgra, 'raw', 'BGRX')
            except Exception as e:
                raise ScreenshotError(f"Failed to convert screenshot: {e}")

            self._counter += 1
            path = await asyncio.to_thread(self._process_image, img, self._counter)
            self.session_files.append(path)
            return path

        except ImageError:
            raise
        except Exception as e:
            raise ScreenshotError(f"Failed to capture screenshot: {e}")

    async def __call__(self) -> Path:
        return await self.capture_screenshot()

    def _process_image(self, img: Image.Image, counter: int) -> Path:
        """Convert, downscale and save a screenshot"""
        try:
            if img.mode != 'RGB':
                img = img.convert('RGB')

            if max(img.size) > self.MAX_DIMENSION:
                ratio = self.MAX_DIMENSION / max(img.size)
                new_size = tuple(int(dim * ratio) for dim in img.size)
                img = img.resize(new_size, Image.Resampling.LANCZOS)

            timestamp = datetime.now().strftime("%Y%m%d_%H%M%S")
            output_path = self.temp_dir / f"screenshot_{timestamp}_{counter:04d}.jpg"

            img.save(
                output_path,
                format=self.COMPRESSION_FORMAT,
                quality=self.JPEG_QUALITY,
                optimize=True
            )

            return output_path

        except Exception as e:
            raise CompressionError(f"Failed to process screenshot: {e}")

    def cleanup_session(self) -> int:
        """Delete screenshots taken during this session

        Returns:
            int: Number of files removed
        """
        removed = 0
        for path in self.session_files:
            try:
                if path.exists():
                    path.unlink()
                    removed += 1
            except Exception as e:
                logger.warning(f"Failed to remove screenshot {path}: {e}")
        self.session_files = []
        logger.info(f"Removed {removed} session screenshots")
        return removed

    async def cleanup(self) -> None:
        """Cleanup resources"""
        self.cleanup_session()
        try:
            self.sct.close()
        except Exception as e:
            logger.error(f"Error closing screenshot manager: {e}")
