"""
Host process for Slack Summary Scribe.

Wires configuration, persistence, the Slack and AI clients, the
summarization pipeline and the delivery retry sweep together, then runs
until SIGINT or SIGTERM.
"""

import asyncio
import logging
import signal
import sys
from datetime import timedelta
from pathlib import Path
from typing import Optional

from .config import ConfigManager, ScribeConfig
from .config.settings import RateLimitBackend
from .data import initialize_repositories, run_migrations
from .data.repositories import RepositoryFactory
from .exceptions import handle_unexpected_error
from .message_processing import ChannelActivityFetcher, TranscriptFormatter
from .models import SummaryOptions
from .rate_limiting import InMemoryCounterStore, RateLimiter, SQLiteCounterStore
from .scheduling import RetrySweepScheduler
from .services import DeliveryService, StaticTokenProvider, SummaryPipeline
from .slack import SlackClient
from .summarization import ClaudeClient, SummarizationEngine


class ScribeApp:
    """Main application class: builds every component and owns their lifecycle."""

    def __init__(self):
        self.config: Optional[ScribeConfig] = None
        self.config_manager: Optional[ConfigManager] = None
        self.repository_factory: Optional[RepositoryFactory] = None
        self.slack_client: Optional[SlackClient] = None
        self.claude_client: Optional[ClaudeClient] = None
        self.delivery_service: Optional[DeliveryService] = None
        self.pipeline: Optional[SummaryPipeline] = None
        self.sweep_scheduler: Optional[RetrySweepScheduler] = None
        self.running = False
        self._shutdown = asyncio.Event()

        logging.basicConfig(
            level=logging.INFO,
            format='%(asctime)s - %(name)s - %(levelname)s - %(message)s',
            handlers=[logging.StreamHandler(sys.stdout)]
        )
        self.logger = logging.getLogger(__name__)

    async def initialize(self, dotenv_path: Optional[str] = None):
        """Load config, prepare the database and wire the pipeline and sweep.

        Args:
            dotenv_path: Optional .env file to load before reading the environment
        """
        try:
            self.logger.info("Initializing Slack Summary Scribe...")

            self.config_manager = ConfigManager(dotenv_path)
            self.config = await self.config_manager.load_config()
            self._configure_logging()
            self.logger.info(f"Configuration loaded (log level {self.config.log_level.value})")

            await self._initialize_database()
            await self._initialize_core_components()

            self.sweep_scheduler = RetrySweepScheduler(
                self.delivery_service,
                interval_minutes=self.config.delivery.sweep_interval_minutes,
            )

            self.logger.info("Summary Scribe ready")

        except Exception as e:
            error = handle_unexpected_error(e)
            self.logger.error(f"Failed to initialize application: {error.to_log_string()}")
            raise

    def _configure_logging(self):
        root = logging.getLogger()
        root.setLevel(self.config.log_level.value)

        if self.config.log_file:
            try:
                log_path = Path(self.config.log_file)
                log_path.parent.mkdir(parents=True, exist_ok=True)
                handler = logging.FileHandler(str(log_path))
                handler.setFormatter(logging.Formatter(
                    '%(asctime)s - %(name)s - %(levelname)s - %(message)s'
                ))
                root.addHandler(handler)
            except OSError as e:
                self.logger.warning(f"File logging disabled, cannot open {self.config.log_file}: {e}")

    async def _initialize_database(self):
        db_path = self.config.database.path
        applied = await run_migrations(db_path)
        self.logger.info(f"Database ready at {db_path} ({applied} migration(s) applied)")

        self.repository_factory = initialize_repositories(
            backend="sqlite",
            db_path=db_path,
            pool_size=self.config.database.pool_size,
        )

    async def _initialize_core_components(self):
        config = self.config

        summary_repository = await self.repository_factory.get_summary_repository()
        delivery_repository = await self.repository_factory.get_delivery_repository()

        if config.rate_limit.backend == RateLimitBackend.SQLITE:
            store = SQLiteCounterStore(await self.repository_factory.get_connection())
        else:
            store = InMemoryCounterStore()
        rate_limiter = RateLimiter(
            store=store,
            ceiling=config.rate_limit.ceiling,
            window_seconds=config.rate_limit.window_seconds,
        )

        self.slack_client = SlackClient(
            base_url=config.slack.api_base_url,
            timeout=config.slack.request_timeout,
        )
        fetcher = ChannelActivityFetcher(
            self.slack_client,
            concurrency=config.slack.fetch_concurrency,
            max_messages=config.slack.max_messages,
        )
        formatter = TranscriptFormatter(timezone=config.slack.transcript_timezone)

        self.claude_client = ClaudeClient(
            api_key=config.ai.api_key,
            base_url=config.ai.base_url,
            default_timeout=config.ai.timeout,
            max_retries=config.ai.max_retries,
        )
        engine = SummarizationEngine(self.claude_client, default_model=config.ai.fallback_model)

        self.delivery_service = DeliveryService(
            summary_repository,
            delivery_repository,
            self.slack_client,
            StaticTokenProvider(default_token=config.slack.bot_token or None),
            max_retries=config.delivery.max_retries,
            batch_size=config.delivery.batch_size,
            max_age=timedelta(hours=config.delivery.max_age_hours),
            stale_pending_after=timedelta(minutes=config.delivery.stale_pending_minutes),
            dashboard_url=config.delivery.dashboard_url,
        )

        self.pipeline = SummaryPipeline(
            rate_limiter=rate_limiter,
            fetcher=fetcher,
            formatter=formatter,
            engine=engine,
            summary_repository=summary_repository,
            delivery_service=self.delivery_service,
            # Requested model plus one fallback hop, each with full retries
            default_timeout=2 * self.claude_client.worst_case_seconds() + config.slack.request_timeout,
            default_options=SummaryOptions(
                model=config.ai.default_model,
                max_output_tokens=config.ai.max_output_tokens,
                temperature=config.ai.temperature,
            ),
        )

    async def start(self):
        """Start the retry sweep and run until a shutdown signal arrives."""
        if not self.config or not self.sweep_scheduler:
            raise RuntimeError("ScribeApp.start() called before initialize()")

        self.running = True
        self.logger.info("Starting Slack Summary Scribe...")

        for sig in [signal.SIGINT, signal.SIGTERM]:
            signal.signal(sig, self._signal_handler)

        try:
            await self.sweep_scheduler.start()
            # Pick up anything left over from the previous run straight away
            await self.sweep_scheduler.run_sweep()

            self.logger.info("Slack Summary Scribe is running. Press Ctrl+C to stop.")
            await self._shutdown.wait()

        except Exception as e:
            error = handle_unexpected_error(e)
            self.logger.error(f"Failed to start application: {error.to_log_string()}")
            raise
        finally:
            await self.stop()

    async def stop(self):
        """Stop the application, shutting down services in reverse order."""
        if not self.running:
            return
        self.running = False
        self.logger.info("Shutting down Summary Scribe")

        if self.sweep_scheduler:
            await self.sweep_scheduler.stop()
        if self.claude_client:
            await self.claude_client.close()
        if self.slack_client:
            await self.slack_client.close()
        if self.repository_factory:
            await self.repository_factory.close()

        self.logger.info("Slack Summary Scribe stopped cleanly")

    def _signal_handler(self, signum, frame):
        """Wake ``start`` so it can shut down cleanly."""
        signal_name = "SIGINT" if signum == signal.SIGINT else "SIGTERM"
        self.logger.info(f"Received {signal_name}")
        self._shutdown.set()


async def main():
    """Main entry point: initialize and run the host process."""
    app = ScribeApp()

    try:
        await app.initialize()
        await app.start()
    except KeyboardInterrupt:
        await app.stop()
    except Exception as e:
        logging.error(f"Fatal error: {e}", exc_info=True)
        sys.exit(1)
