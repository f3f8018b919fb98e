"""macOS foreground window and input idle introspection"""
import asyncio
import logging
import re
import sys
from typing import Optional

from focus_coach.models.sample import WindowContext
from focus_coach.services.errors import WindowError

logger = logging.getLogger(__name__)

FIELD_SEPARATOR = "|||"

FRONT_APP_SCRIPT = f'''
tell application "System Events"
    set frontApp to first application process whose frontmost is true
    set appName to name of frontApp
    set bundleId to bundle identifier of frontApp
    set windowTitle to ""
    try
        set windowTitle to name of front window of frontApp
    end try
end tell
return bundleId & "{FIELD_SEPARATOR}" & appName & "{FIELD_SEPARATOR}" & windowTitle
'''

BROWSER_TAB_SCRIPTS = {
    "com.google.Chrome": f'''
tell application "Google Chrome"
    return (URL of active tab of front window) & "{FIELD_SEPARATOR}" & (title of active tab of front window)
end tell
''',
    "com.apple.Safari": f'''
tell application "Safari"
    return (URL of front document) & "{FIELD_SEPARATOR}" & (name of front document)
end tell
''',
}

FOCUSED_TEXT_SCRIPT = '''
tell application "System Events"
    try
        set focusedElement to focused element of (first application process whose frontmost is true)
        set elementValue to value of focusedElement
        if elementValue is not missing value then
            return elementValue as string
        end if
    end try
end tell
return ""
'''

HID_IDLE_PATTERN = re.compile(r'"HIDIdleTime"\s*=\s*(\d+)')


def parse_front_app(output: str) -> Optional[WindowContext]:
    """Parse ``bundleId|||appName|||windowTitle`` into a WindowContext"""
    if not output or not output.strip():
        return None
    parts = output.strip().split(FIELD_SEPARATOR)
    parts += [""] * (3 - len(parts))
    bundle_id, app_name, window_title = (p.strip() for p in parts[:3])
    if bundle_id in ("", "missing value"):
        bundle_id = app_name
    if not bundle_id:
        return None
    return WindowContext(
        app_id=bundle_id,
        app_name=app_name or None,
        window_title=window_title or None,
    )


def parse_browser_tab(output: str):
    """Parse ``url|||title``; returns (url, title) with None for missing parts"""
    if not output or not output.strip():
        return None, None
    url, _, title = output.strip().partition(FIELD_SEPARATOR)
    return url.strip() or None, title.strip() or None


def parse_focused_text(output: str) -> Optional[str]:
    """Value of the focused UI element, None when empty or missing"""
    text = (output or "").strip()
    if not text or text == "missing value":
        return None
    return text


def parse_hid_idle_seconds(output: str) -> Optional[float]:
    """Seconds since last input from ``ioreg -c IOHIDSystem`` output"""
    match = HID_IDLE_PATTERN.search(output or "")
    if not match:
        return None
    return int(match.group(1)) / 1_000_000_000


class MacWindowProvider:
    """captureActiveWindowContext and input idle time via osascript and ioreg"""

    def __init__(self, timeout: float = 3.0, platform: str = sys.platform):
        self.timeout = timeout
        self.enabled = platform == "darwin"
        if not self.enabled:
            logger.warning(f"Window introspection is only available on macOS (platform: {platform})")

    async def __call__(self) -> Optional[WindowContext]:
        return await self.capture()

    async def capture(self) -> Optional[WindowContext]:
        """Foreground app, window title, focused text and, for browsers, the active tab"""
        if not self.enabled:
            return None
        output = await self._run("osascript", "-e", FRONT_APP_SCRIPT)
        context = parse_front_app(output)
        if context is None:
            return None

        script = BROWSER_TAB_SCRIPTS.get(context.app_id)
        if script:
            try:
                url, title = parse_browser_tab(await self._run("osascript", "-e", script))
            except WindowError as e:
                logger.debug(f"Browser tab lookup failed: {e}")
            else:
                context = WindowContext(
                    app_id=context.app_id,
                    app_name=context.app_name,
                    window_title=title or context.window_title,
                    url=url,
                )
        return context.model_copy(update={"on_screen_text": await self.focused_text()})

    async def focused_text(self) -> Optional[str]:
        """Text of the focused UI element via the Accessibility API"""
        if not self.enabled:
            return None
        try:
            return parse_focused_text(await self._run("osascript", "-e", FOCUSED_TEXT_SCRIPT))
        except WindowError as e:
            logger.debug(f"Focused element lookup failed: {e}")
            return None

    async def idle_seconds(self) -> Optional[float]:
        """Seconds since the last keyboard or mouse input"""
        if not self.enabled:
            return None
        output = await self._run("ioreg", "-c", "IOHIDSystem")
        return parse_hid_idle_seconds(output)

    async def _run(self, *args: str) -> str:
        try:
            process = await asyncio.create_subprocess_exec(
                *args,
                stdout=asyncio.subprocess.PIPE,
                stderr=asyncio.subprocess.PIPE,
            )
            stdout, stderr = await asyncio.wait_for(process.communicate(), timeout=self.timeout)
        except asyncio.TimeoutError:
            process.kill()
            await process.wait()
            raise WindowError(f"{args[0]} timed out after {self.timeout}s")
        except OSError as e:
            raise WindowError(f"Failed to run {args[0]}: {e}")

        if process.returncode != 0:
            raise WindowError(f"{args[0]} exited with {process.returncode}: {stderr.decode(errors='replace').strip()}")
        return stdout.decode(errors="replace")
