from fastapi import FastAPI
from fastapi.middleware.cors import CORSMiddleware
from contextlib import asynccontextmanager
from database.mongodb import db
from config import get_settings
from routes import lenses, ledger
import logging

# Configure logging
logging.basicConfig(
    level=logging.INFO,
    format='%(asctime)s - %(name)s - %(levelname)s - %(message)s'
)
logger = logging.getLogger(__name__)

settings = get_settings()

@asynccontextmanager
async def lifespan(app: FastAPI):
    """Lifecycle manager for the app"""
    # Startup
    await db.connect(settings.mongo_url, settings.db_name)
    logger.info("OptiLedger Backend started")
    yield
    # Shutdown
    await db.disconnect()
    logger.info("OptiLedger Backend stopped")

# Create FastAPI app
app = FastAPI(
    title="OptiLedger API",
    description="Optical retail back-office: lens power selection and party ledgers",
    version="1.0.0",
    lifespan=lifespan
)

# CORS middleware
app.add_middleware(
    CORSMiddleware,
    allow_origins=settings.cors_origins,
    allow_credentials=True,
    allow_methods=["*"],
    allow_headers=["*"],
)

# Include routers
app.include_router(lenses.router)
app.include_router(ledger.router)

@app.get("/")
async def root():
    return {
        "message": "OptiLedger API",
        "version": "1.0.0",
        "status": "running"
    }

@app.get("/health")
async def health_check():
    return {"status": "healthy"}
