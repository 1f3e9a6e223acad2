from fastapi import FastAPI
from fastapi.middleware.cors import CORSMiddleware
from contextlib import asynccontextmanager
import logging

from config.settings import settings
from config.database import init_db, close_db
from config.redis_client import redis_client
from api.health import router as health_router
from api.retention import router as retention_router
from escalation.detector import EscalationDetector
from retention.engagement_scorer import EngagementScorer
from retention.goal_progress import GoalProgressEngine
from retention.policy import goal_progress_policy_from_settings, nudge_policy_from_settings
from services.activity_repository import SqlActivityRepository
from services.concurrency import KeyedLock
from services.engagement_scheduler import EngagementCheckScheduler
from services.goal_completion import GoalCompletionHandler
from services.metrics import LoggingMetricsSink
from services.nudge_dispatcher import NotificationDispatcher
from services.platform_client import PlatformClient
from services.retention_engine import RetentionEngine
from services.text_generation import TextGenerationClient, build_llm
from services.tutor_handoff import TutorHandoffCoordinator

# Configure logging
logging.basicConfig(
    level=getattr(logging, settings.LOG_LEVEL),
    format="%(asctime)s - %(name)s - %(levelname)s - %(message)s"
)

logger = logging.getLogger(__name__)


def wire_services(app: FastAPI):
    """Build the retention components and attach them to app.state"""
    metrics = LoggingMetricsSink()
    repository = SqlActivityRepository()
    platform = PlatformClient()
    text_generator = TextGenerationClient(build_llm())
    conversation_locks = KeyedLock()

    detector = EscalationDetector(text_generator=text_generator)
    completion_handler = GoalCompletionHandler(repository, platform, events=redis_client, metrics=metrics)
    goal_engine = GoalProgressEngine(
        repository,
        text_generator=text_generator,
        policy=goal_progress_policy_from_settings(),
        on_goal_completed=completion_handler,
    )
    dispatcher = NotificationDispatcher(
        repository, platform, redis_client, policy=nudge_policy_from_settings(), metrics=metrics
    )

    engine = RetentionEngine(
        repository,
        scorer=EngagementScorer(),
        detector=detector,
        goal_engine=goal_engine,
        dispatcher=dispatcher,
        metrics=metrics,
        locks=conversation_locks,
    )

    app.state.metrics = metrics
    app.state.platform_client = platform
    app.state.retention_engine = engine
    app.state.handoff_coordinator = TutorHandoffCoordinator(
        repository, detector, platform, metrics=metrics, locks=conversation_locks
    )
    app.state.engagement_scheduler = EngagementCheckScheduler(
        repository, engine.run_engagement_check, metrics=metrics
    )


@asynccontextmanager
async def lifespan(app: FastAPI):
    """Lifecycle events for FastAPI application"""
    # Startup
    logger.info("🚀 Starting Retention Engine...")

    try:
        # Initialize database
        await init_db()

        # Initialize Redis
        await redis_client.connect()

        wire_services(app)

        # Start background services
        if settings.ENGAGEMENT_CHECK_ENABLED:
            await app.state.engagement_scheduler.start()

        logger.info("✅ Retention Engine started successfully")
        logger.info(f"📡 API available at http://0.0.0.0:8000")
        logger.info(f"📚 API docs at http://0.0.0.0:8000/docs")

    except Exception as e:
        logger.error(f"❌ Startup failed: {e}")
        raise

    yield

    # Shutdown
    logger.info("⏳ Shutting down Retention Engine...")

    try:
        # Stop background services
        await app.state.engagement_scheduler.stop()
        await app.state.platform_client.close()

        # Close connections
        await redis_client.disconnect()
        await close_db()

        logger.info("✅ Retention Engine shut down gracefully")

    except Exception as e:
        logger.error(f"❌ Shutdown error: {e}")


# Initialize FastAPI app
app = FastAPI(
    title="Tutor Retention Engine",
    description="Engagement scoring, retention nudges, tutor escalation and goal progress",
    version="1.0.0",
    lifespan=lifespan
)

# CORS middleware
app.add_middleware(
    CORSMiddleware,
    allow_origins=[
        "http://localhost:3000",
        "http://localhost:3002"
    ],
    allow_credentials=True,
    allow_methods=["*"],
    allow_headers=["*"],
)

# Include routers
app.include_router(health_router)
app.include_router(retention_router)


@app.get("/")
async def root():
    """Root endpoint"""
    return {
        "service": "Tutor Retention Engine",
        "version": "1.0.0",
        "status": "running",
        "docs": "/docs",
        "health": "/health"
    }


if __name__ == "__main__":
    import uvicorn

    uvicorn.run(
        "main:app",
        host="0.0.0.0",
        port=8000,
        reload=True,
        log_level=settings.LOG_LEVEL.lower()
    )
