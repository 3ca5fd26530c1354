import logging
import re
from typing import List, Optional

from fastapi import APIRouter, File, Form, HTTPException, UploadFile, status

from pharmatwin.core.config import get_config
from pharmatwin.exceptions import EmptyResultError, FormatError
from pharmatwin.schemas.pharma_schema import AnalysisResponse
from pharmatwin.services.pipeline.analysis_pipeline import run_analysis

router = APIRouter()
logger = logging.getLogger(__name__)

DRUG_NAME_PATTERN = re.compile(r"^[A-Z]+$")
UPLOAD_CHUNK_BYTES = 1024 * 1024

# Literal codes; the starlette constants for these were renamed
HTTP_413_CONTENT_TOO_LARGE = 413
HTTP_422_UNPROCESSABLE_CONTENT = 422


async def read_upload(vcf: UploadFile, limit: int) -> bytes:
    """Read the upload in chunks, rejecting it as soon as it passes ``limit`` bytes."""
    chunks = []
    size = 0
    while True:
        chunk = await vcf.read(UPLOAD_CHUNK_BYTES)
        if not chunk:
            break
        size += len(chunk)
        if size > limit:
            raise HTTPException(
                status_code=HTTP_413_CONTENT_TOO_LARGE,
                detail=f"File is too large (>{limit // (1024 * 1024)}MB).",
            )
        chunks.append(chunk)
    return b"".join(chunks)



def parse_drug_field(drugs: Optional[str]) -> List[str]:
    """Split the comma-separated form field; names must be letters only."""
    if not drugs:
        return []
    names = [d.strip().upper() for d in drugs.split(",") if d.strip()]
    invalid = [n for n in names if not DRUG_NAME_PATTERN.match(n)]
    if invalid:
        raise HTTPException(
            status_code=status.HTTP_400_BAD_REQUEST,
            detail=f"Invalid drug name(s): {', '.join(invalid)}. Use letters only.",
        )
    return names


@router.post(
    "/analyze",
    response_model=AnalysisResponse,
    status_code=status.HTTP_200_OK,
    summary="Analyze Pharmacogenomic Risk",
    description="Upload a VCF file and receive a risk assessment and PK simulation for each requested drug.",
)
async def analyze_vcf(
    vcf: UploadFile = File(..., description="Patient's VCF file containing genetic variants"),
    drugs: Optional[str] = Form(None, description="Comma-separated drug names; defaults to all supported drugs"),
    explain: bool = Form(True, description="Request LLM explanations"),
) -> AnalysisResponse:
    """
    Endpoint to trigger the pharmacogenomic analysis pipeline.

    - **vcf**: Genetic data file (.vcf)
    - **drugs**: Optional comma-separated drug list
    - **explain**: Generate free-text explanations when an LLM key is configured
    """
    upload = get_config().upload

    filename = (vcf.filename or "").lower()
    if not any(filename.endswith(suffix) for suffix in upload.allowed_suffixes):
        raise HTTPException(
            status_code=status.HTTP_400_BAD_REQUEST,
            detail="Invalid file type. Please upload a file with the .vcf extension.",
        )

    requested = parse_drug_field(drugs)

    content = await read_upload(vcf, upload.max_upload_bytes)
    if not content:
        raise HTTPException(status_code=status.HTTP_400_BAD_REQUEST, detail="Uploaded file is empty.")

    try:
        results = await run_analysis(content, requested, explain=explain)
    except FormatError as e:
        logger.error("Rejected upload %s: %s", vcf.filename, e)
        raise HTTPException(
            status_code=HTTP_422_UNPROCESSABLE_CONTENT,
            detail=f"Invalid VCF content: {e}",
        )
    except EmptyResultError as e:
        logger.error("Rejected upload %s: %s", vcf.filename, e)
        raise HTTPException(
            status_code=HTTP_422_UNPROCESSABLE_CONTENT,
            detail=f"Invalid VCF content: {e}",
        )
    except Exception:
        logger.exception("Unexpected error in analysis pipeline")
        raise HTTPException(
            status_code=status.HTTP_500_INTERNAL_SERVER_ERROR,
            detail="An error occurred during the analysis pipeline.",
        )

    return AnalysisResponse(results=results)
