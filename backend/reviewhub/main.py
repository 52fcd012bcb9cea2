"""FastAPI application entry point."""
import logging

from fastapi import FastAPI, Request
from fastapi.middleware.cors import CORSMiddleware
from fastapi.responses import JSONResponse

from .config import settings
from .database import init_db
from .errors import ReviewError
from .api import assignments, criteria, review_settings, reviewers, reviews, stats, templates

logging.basicConfig(
    level=settings.log_level,
    format="%(asctime)s %(levelname)s %(name)s: %(message)s",
)
logger = logging.getLogger(__name__)

# Create FastAPI app
app = FastAPI(
    title="ReviewHub",
    description="Multi-reviewer scoring, consensus and ranking for program applications",
    version="0.1.0",
)

# CORS middleware for frontend
app.add_middleware(
    CORSMiddleware,
    allow_origins=settings.cors_origins,
    allow_credentials=True,
    allow_methods=["*"],
    allow_headers=["*"],
)


@app.exception_handler(ReviewError)
async def review_error_handler(request: Request, exc: ReviewError):
    """Translate domain errors into HTTP responses."""
    if exc.status_code >= 500:
        logger.error(f"{request.method} {request.url.path} failed: {exc.message}")
    return JSONResponse(status_code=exc.status_code, content={"error": exc.to_dict()})


# Include routers
app.include_router(criteria.router, prefix="/api/programs", tags=["criteria"])
app.include_router(review_settings.router, prefix="/api/programs", tags=["review-settings"])
app.include_router(templates.router, prefix="/api/templates", tags=["templates"])
app.include_router(assignments.router, prefix="/api", tags=["assignments"])
app.include_router(reviews.router, prefix="/api/reviews", tags=["reviews"])
app.include_router(stats.router, prefix="/api", tags=["stats"])
app.include_router(reviewers.router, prefix="/api", tags=["reviewers"])


@app.on_event("startup")
async def startup_event():
    """Initialize database on startup."""
    init_db()


@app.get("/")
async def root():
    """Root endpoint."""
    return {
        "name": "ReviewHub",
        "description": "Review scoring and aggregation service",
        "version": "0.1.0",
        "docs": "/docs",
    }


@app.get("/health")
async def health_check():
    """Health check endpoint."""
    return {"status": "healthy"}
