"""
RYT DID FastAPI Main Application
Entry point for the DID onboarding wizard service.
"""

import logging

from fastapi import FastAPI
from fastapi.middleware.cors import CORSMiddleware
import uvicorn

from did_onboarding import __version__, session_store
from did_onboarding.config import config
from did_onboarding.database import init_database
from did_onboarding.routes import sessions, profile

logging.basicConfig(
    level=config.API_LOG_LEVEL.upper(),
    format='%(asctime)s - %(name)s - %(levelname)s - %(message)s'
)
logger = logging.getLogger(__name__)

# Initialize FastAPI app
app = FastAPI(
    title="RYT DID Onboarding",
    description="Multi-step decentralized identifier onboarding wizard",
    version=__version__,
    docs_url="/api/docs",
    redoc_url="/api/redoc"
)

# Configure CORS
app.add_middleware(
    CORSMiddleware,
    allow_origins=["*"],  # Configure appropriately for production
    allow_credentials=True,
    allow_methods=["*"],
    allow_headers=["*"],
)

# Include routers
app.include_router(sessions.router, prefix="/api", tags=["Wizard"])
app.include_router(profile.router, prefix="/api", tags=["Profile"])


@app.on_event("startup")
async def startup_event():
    """Initialize database on startup."""
    init_database()
    for name, configured in (
        ("IPFS", config.is_ipfs_configured()),
        ("vision extraction", config.is_vision_configured()),
        ("reCAPTCHA", config.is_captcha_configured()),
        ("minting", config.is_blockchain_configured()),
    ):
        if not configured:
            logger.warning("%s not configured, running in demo mode", name)


@app.get("/api/health")
async def health_check():
    """Health check endpoint."""
    return {
        "status": "healthy",
        "service": "RYT DID Onboarding",
        "version": __version__,
        "active_sessions": session_store.count(),
        "demo_fallback": config.ALLOW_DEMO_FALLBACK
    }


if __name__ == "__main__":
    uvicorn.run(
        "did_onboarding.main:app",
        host=config.API_HOST,
        port=config.API_PORT,
        log_level=config.API_LOG_LEVEL,
        reload=True
    )
