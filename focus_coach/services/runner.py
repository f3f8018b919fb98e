import asyncio
import logging
import signal
from typing import Optional

from focus_coach.config.settings import settings
from focus_coach.models.focus_state import NudgeEvent
from focus_coach.services.analyzer import GeminiAnalyzer
from focus_coach.services.display import TerminalDisplay
from focus_coach.services.entity_cache import EntityCache
from focus_coach.services.image import ImageManager
from focus_coach.services.nudge import NudgeGenerator
from focus_coach.services.sampler import ContextSampler
from focus_coach.services.scheduler import AsyncioScheduler
from focus_coach.services.stabilizer import FocusStabilizer
from focus_coach.services.window import MacWindowProvider

logger = logging.getLogger(__name__)

class ServiceRunner:
    """Host shell wiring the OS and AI collaborators into the stabilizer"""

    def __init__(self, work_context: str, display: Optional[TerminalDisplay] = None):
        settings.validate_paths()
        self.work_context = work_context
        self.running = False
        self.shutdown_event = asyncio.Event()
        self.display = display or TerminalDisplay()
        self.nudge_count = 0

        # Collaborators
        self.scheduler = AsyncioScheduler()
        self.window = MacWindowProvider()
        self.image_manager = ImageManager()
        self.analyzer = GeminiAnalyzer()

        # Core pipeline
        self.cache = EntityCache()
        self.sampler = ContextSampler(self.window, scheduler=self.scheduler)
        self.nudge_generator = NudgeGenerator(self.analyzer.generate_text)
        self.stabilizer = FocusStabilizer(
            context_source=self.window,
            classifier=self.analyzer.classify_focus,
            scheduler=self.scheduler,
            capture_artifact=self.image_manager.capture_screenshot,
            idle_reader=self.window.idle_seconds,
            sampler=self.sampler,
            cache=self.cache,
            nudge_generator=self.nudge_generator,
            on_state_change=self.display.show_transition,
            on_classification=self.display.show_classification,
            on_nudge=self._on_nudge,
        )

    def _on_nudge(self, event: NudgeEvent) -> None:
        self.nudge_count += 1
        self.display.show_nudge(event)

    def _setup_signal_handlers(self):
        """Set up handlers for system signals"""
        loop = asyncio.get_running_loop()
        for sig in (signal.SIGTERM, signal.SIGINT):
            loop.add_signal_handler(sig, lambda s=sig: self._handle_signal(s))

    def _handle_signal(self, sig: signal.Signals) -> None:
        logger.info(f"Received exit signal {sig.name}...")
        self.shutdown_event.set()

    async def shutdown(self):
        """Stop monitoring and release resources"""
        if not self.running:
            return
        logger.info("Initiating graceful shutdown...")
        self.running = False
        self.stabilizer.stop()
        try:
            await self.image_manager.cleanup()
            logger.info("Cleanup completed successfully")
        except Exception as e:
            logger.error(f"Error during cleanup: {e}")
        self.display.show_summary(self.stabilizer.transitions, self.nudge_count)

    async def run(self):
        """Monitor until a shutdown signal arrives"""
        logger.info("Starting Focus Coach...")
        self._setup_signal_handlers()
        self.running = True
        self.display.show_banner(self.work_context)
        try:
            self.stabilizer.start(self.work_context)
            await self.shutdown_event.wait()
        finally:
            await self.shutdown()

def run_service(work_context: str):
    """Entry point for running the monitor"""
    runner = ServiceRunner(work_context)
    asyncio.run(runner.run())
