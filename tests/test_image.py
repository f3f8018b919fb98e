import pytest
from pathlib import Path
from PIL import Image
from focus_coach.services.image import ImageManager, ScreenshotError, CompressionError
from unittest.mock import patch, Mock
import asyncio

# Create a MockMSS class for testing
class MockMSS:
    def __init__(self, width=1920, height=1080):
        # monitors[0] is the union of all monitors, monitors[1] the primary one
        self.monitors = [
            {"top": 0, "left": 0, "width": width, "height": height},
            {"top": 0, "left": 0, "width": width, "height": height}
        ]
        self.closed = False

    def grab(self, monitor):
        mock_screenshot = Mock()
        mock_screenshot.size = (monitor['width'], monitor['height'])

        # 4 bytes per pixel, BGRA
        pixels = monitor['width'] * monitor['height']
        mock_screenshot.bgra = b'\xff' * (pixels * 4)

        return mock_screenshot

    def close(self):
        self.closed = True

@pytest.fixture
def manager(tmp_path):
    with patch('mss.mss', return_value=MockMSS()):
        yield ImageManager(temp_dir=tmp_path)

@pytest.mark.asyncio
async def test_screenshot_capture(manager, tmp_path):
    """Test capturing a screenshot"""
    screenshot_path = await manager.capture_screenshot()

    assert Path(screenshot_path).exists()
    assert Path(screenshot_path).suffix == '.jpg'
    assert Path(screenshot_path).parent == tmp_path
    assert manager.session_files == [screenshot_path]

@pytest.mark.asyncio
async def test_manager_is_an_artifact_capturer(manager):
    path = await manager()
    assert path.exists()

def test_screenshot_error(mocker):
    """Test handling screenshot initialization errors"""
    mock_mss = mocker.patch('mss.mss')
    mock_mss.side_effect = Exception("Screenshot failed")

    with pytest.raises(ScreenshotError) as exc_info:
        ImageManager()
    assert "Failed to initialize screenshot manager" in str(exc_info.value)

@pytest.mark.asyncio
async def test_grab_error(manager):
    manager.sct.grab = Mock(side_effect=Exception("display unavailable"))

    with pytest.raises(ScreenshotError) as exc_info:
        await manager.capture_screenshot()
    assert "Failed to grab screenshot" in str(exc_info.value)

@pytest.mark.asyncio
async def test_conversion_error(manager):
    """Test handling of image conversion errors"""
    with patch('PIL.Image.frombytes', side_effect=Exception("Conversion failed")):
        with pytest.raises(ScreenshotError) as exc_info:
            await manager.capture_screenshot()

        assert "Failed to convert screenshot" in str(exc_info.value)

@pytest.mark.asyncio
async def test_compression_error(manager):
    with patch.object(Image.Image, 'save', side_effect=OSError("disk full")):
        with pytest.raises(CompressionError):
            await manager.capture_screenshot()
    assert manager.session_files == []

@pytest.mark.asyncio
async def test_image_compression_settings(tmp_path):
    """Test that large screens are scaled down"""
    with patch('mss.mss', return_value=MockMSS(3840, 2160)):
        manager = ImageManager(temp_dir=tmp_path)

    output_path = await manager.capture_screenshot()

    with Image.open(output_path) as img:
        assert max(img.size) <= manager.MAX_DIMENSION
        assert img.size[0] > img.size[1]
        assert img.format == manager.COMPRESSION_FORMAT
        assert img.mode == 'RGB'

@pytest.mark.asyncio
async def test_concurrent_captures(manager):
    """Test handling multiple concurrent screenshot captures"""
    tasks = [manager.capture_screenshot() for _ in range(5)]
    results = await asyncio.gather(*tasks)

    paths = [Path(result) for result in results]
    assert len(set(paths)) == len(paths), "Each capture should produce a unique file"
    for path in paths:
        assert path.exists()

@pytest.mark.asyncio
async def test_cleanup_session(manager, tmp_path):
    """Test cleanup removes only this session's screenshots"""
    keep = tmp_path / "screenshot_other.jpg"
    keep.touch()
    first = await manager.capture_screenshot()
    second = await manager.capture_screenshot()
    second.unlink()

    assert manager.cleanup_session() == 1
    assert not first.exists()
    assert keep.exists()
    assert manager.session_files == []

@pytest.mark.asyncio
async def test_cleanup_closes_capture(manager):
    await manager.capture_screenshot()
    await manager.cleanup()
    assert manager.sct.closed
    assert manager.session_files == []
