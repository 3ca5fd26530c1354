from typing import Optional

from fastapi import APIRouter, HTTPException, Query, status

from pharmatwin.schemas.pharma_schema import DrugCatalogue, DrugInfo, PKSimulation
from pharmatwin.services.pharmacogenomics.guideline_loader import get_guidelines
from pharmatwin.services.pk.simulator import PKSimulator

router = APIRouter()


@router.get("/drugs", response_model=DrugCatalogue, summary="Supported drugs")
async def list_drugs() -> DrugCatalogue:
    tables = get_guidelines()
    drugs = []
    for name, definition in tables.drugs.items():
        drugs.append(
            DrugInfo(
                drug=name,
                gene=tables.get_drug_gene(name),
                mechanism=definition.mechanism,
                pathway=tables.get_pathway(name).value,
                evidence=definition.evidence,
            )
        )
    return DrugCatalogue(dataset_version=tables.dataset_version, drugs=drugs)


@router.get("/simulate/{drug}", response_model=PKSimulation, summary="PK digital twin simulation")
async def simulate_drug(
    drug: str,
    phenotype: str = Query("NM", description="Phenotype label or code, e.g. PM or 'Poor Metabolizer'"),
    window: Optional[float] = Query(None, gt=0, allow_inf_nan=False, description="Time window in hours; derived from half-life when omitted"),
) -> PKSimulation:
    """Unknown drugs are simulated with the default parameter set."""
    if not drug.strip().isalpha():
        raise HTTPException(status_code=status.HTTP_400_BAD_REQUEST, detail="Drug name must be letters only.")
    series = PKSimulator().simulate(drug, phenotype, window)
    return PKSimulation.from_series(series)
