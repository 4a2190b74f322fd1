import logging
from contextlib import asynccontextmanager

from fastapi import FastAPI
from fastapi.middleware.cors import CORSMiddleware

from app.achievements.router import router as achievements_router
from app.common.config import settings
from app.quizzes.router import router as quizzes_router


@asynccontextmanager
async def lifespan(app: FastAPI):
    # Startup
    logging.basicConfig(
        level=settings.log_level.upper(),
        format="%(asctime)s %(levelname)s %(name)s: %(message)s",
    )
    yield
    # Shutdown


app = FastAPI(
    title="Quiz Platform Achievements API",
    description="Achievement unlock engine for the quiz platform",
    version="1.0.0",
    lifespan=lifespan,
)

# CORS middleware
app.add_middleware(
    CORSMiddleware,
    allow_origins=["*"],  # Configure appropriately for production
    allow_credentials=True,
    allow_methods=["*"],
    allow_headers=["*"],
)

# Include routers with /api/v1 prefix
app.include_router(achievements_router, prefix="/api/v1/achievements", tags=["achievements"])
app.include_router(quizzes_router, prefix="/api/v1/quizzes", tags=["quizzes"])


@app.get("/health")
def health_check():
    return {"status": "healthy"}
