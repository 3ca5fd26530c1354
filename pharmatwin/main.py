import logging

from fastapi import FastAPI
from fastapi.middleware.cors import CORSMiddleware

from pharmatwin import __version__
from pharmatwin.api.router import api_router
from pharmatwin.core import logging as _logging  # noqa: F401  Initialize logging
from pharmatwin.services.llm.groq_client import groq_api_key
from pharmatwin.services.pharmacogenomics.guideline_loader import get_guidelines

logger = logging.getLogger(__name__)

app = FastAPI(
    title="PharmaTwin API",
    description="Pharmacogenomic risk assessment with a one-compartment PK digital twin",
    version=__version__,
)

# CORS Configuration
app.add_middleware(
    CORSMiddleware,
    allow_origins=["*"],
    allow_credentials=True,
    allow_methods=["*"],
    allow_headers=["*"],
)

# Include API Routers
app.include_router(api_router, prefix="/api/v1")


@app.on_event("startup")
async def startup_event():
    # Preload and validate the guideline dataset
    tables = get_guidelines()
    logger.info("Guideline dataset %s ready", tables.dataset_version)
    if not groq_api_key():
        logger.warning("GROQ_API_KEY not set; LLM explanations are disabled")


@app.get("/health")
async def health_check():
    return {"status": "ok", "service": "PharmaTwin", "version": __version__}
