from fastapi import FastAPI
from fastapi.middleware.cors import CORSMiddleware
from contextlib import asynccontextmanager
from .config import settings
from .database import init_db
from .api.errors import register_exception_handlers
from .utils.litellm_logging import configure_third_party_logging
import logging
import os

# Configure logging
os.makedirs(os.path.dirname(settings.log_file) or ".", exist_ok=True)
logging.basicConfig(
    level=getattr(logging, settings.log_level.upper()),
    format="%(asctime)s - %(name)s - %(levelname)s - %(message)s",
    handlers=[
        logging.FileHandler(settings.log_file),
        logging.StreamHandler()
    ]
)
configure_third_party_logging()

logger = logging.getLogger(__name__)


@asynccontextmanager
async def lifespan(app: FastAPI):
    """Create the schema once before serving requests"""
    logger.info("Initializing database...")
    init_db()
    if not settings.openrouter_api_key:
        logger.warning("OPENROUTER_API_KEY is not set; AI endpoints will answer 500")
    logger.info("Application startup complete")
    yield


# Create FastAPI app
app = FastAPI(
    title=settings.app_name,
    version=settings.app_version,
    debug=settings.debug,
    lifespan=lifespan,
)

register_exception_handlers(app)

# Add CORS middleware
logger.info(f"CORS Origins: {settings.cors_origins}")
app.add_middleware(
    CORSMiddleware,
    allow_origins=settings.cors_origins,
    allow_credentials=True,
    allow_methods=["GET", "POST", "PUT", "DELETE", "OPTIONS"],
    allow_headers=["*"],
    expose_headers=["X-Prompt-Tokens", "X-Chapter-Number"],
)

# Health check endpoint
@app.get("/health")
async def health_check():
    """Health check endpoint"""
    return {
        "status": "healthy",
        "app": settings.app_name,
        "version": settings.app_version,
        "ai_configured": bool(settings.openrouter_api_key)
    }

# Import and include routers
from .api import ai, chapters, parts, story

app.include_router(chapters.router, prefix="/chapters", tags=["chapters"])
app.include_router(parts.router, prefix="/parts", tags=["parts"])
app.include_router(story.router, prefix="/story", tags=["story"])
app.include_router(ai.router, prefix="/ai", tags=["ai"])

if __name__ == "__main__":
    import uvicorn
    port = int(os.getenv("PORT", "9876"))
    uvicorn.run(app, host="0.0.0.0", port=port)
