"""
PK Simulator - one-compartment oral absorption model ("digital twin").

    C(t) = (D·F / Vd) · (ka / (ka − ke)) · (e^(−ke·t) − e^(−ka·t)),  clamped at 0
    ke   = ke_base · phenotype modifier

For prodrugs the modifier scales the activation rate and an active-metabolite
curve is produced alongside the parent drug:

    metabolite(t) = C(t) · (1 − e^(−kmet·t)) · modifier · weight,  kmet = fraction · ke

Series are lazy, finite and restartable: iterating a PKSeries twice recomputes
identical values.
"""

from __future__ import annotations

import logging
import math
import warnings
from dataclasses import dataclass
from typing import Iterator, List, Optional, Union

from pharmatwin.core.config import PKConfig, get_pk_config
from pharmatwin.exceptions import SingularModelWarning
from pharmatwin.services.pharmacogenomics.guideline_loader import (
    GuidelineDataset,
    PKParameters,
    get_guidelines,
)
from pharmatwin.services.pharmacogenomics.models import Pathway, PhenotypeCode, PhenotypeLabel
from pharmatwin.services.pharmacogenomics.phenotype_mapper import normalize_phenotype

logger = logging.getLogger(__name__)

# Canonical code -> modifier table key; Unknown has no entry (modifier 1.0)
MODIFIER_KEYS = {
    PhenotypeCode.PM: "poor",
    PhenotypeCode.IM: "intermediate",
    PhenotypeCode.NM: "normal",
    PhenotypeCode.NORMAL: "normal",
    PhenotypeCode.RM: "rapid",
    PhenotypeCode.URM: "ultrarapid",
}

CLEARANCE_LABELS = {
    "poor": "Low Clearance",
    "intermediate": "Reduced Clearance",
    "ultrarapid": "High Clearance",
}
DEFAULT_CLEARANCE_LABEL = "Normal Clearance"


@dataclass(frozen=True)
class ClearanceDrug:
    """Enzyme or transporter removes the active drug."""
    name: str
    params: PKParameters
    modifier: float

    @property
    def prodrug(self) -> bool:
        return False


@dataclass(frozen=True)
class ProdrugDrug:
    """Enzyme activates the drug; carries the active-metabolite parameters."""
    name: str
    params: PKParameters
    modifier: float
    metabolite_fraction: float
    metabolite_weight: float

    @property
    def prodrug(self) -> bool:
        return True


DrugModel = Union[ClearanceDrug, ProdrugDrug]


@dataclass(frozen=True)
class PKSeriesPoint:
    time_hours: float
    concentration: float
    metabolite_concentration: Optional[float]
    toxicity_threshold: float
    efficacy_floor: float


@dataclass(frozen=True)
class PKSummary:
    cmax: float
    tmax_hours: float
    auc: float
    exceeds_toxicity: bool
    below_efficacy: bool


def select_time_window(half_life_hours: float, config: Optional[PKConfig] = None) -> float:
    """About five half-lives, snapped upward to a readable window size."""
    config = config or get_pk_config()
    raw = config.half_lives_shown * half_life_hours
    choices = sorted(config.window_choices)
    for choice in choices[:-1]:
        if raw < choice:
            return choice
    return choices[-1]


def clearance_label(phenotype: Union[PhenotypeLabel, PhenotypeCode, str]) -> str:
    key = MODIFIER_KEYS.get(normalize_phenotype(phenotype))
    return CLEARANCE_LABELS.get(key, DEFAULT_CLEARANCE_LABEL)


class PKSeries:
    """Restartable concentration-time series for one (drug, phenotype, window)."""

    def __init__(self, model: DrugModel, phenotype: PhenotypeCode, window_hours: float, config: PKConfig):
        self.model = model
        self.phenotype = phenotype
        self.window_hours = window_hours
        self._intervals = config.sample_intervals
        self._tolerance = config.singular_tolerance

    @property
    def ke(self) -> float:
        return self.model.params.ke_base * self.model.modifier

    @property
    def is_singular(self) -> bool:
        return abs(self.model.params.ka - self.ke) <= self._tolerance

    def __len__(self) -> int:
        return self._intervals + 1

    def __iter__(self) -> Iterator[PKSeriesPoint]:
        p = self.model.params
        ka, ke = p.ka, self.ke
        scale = p.dose_mg * p.bioavailability / p.volume_l
        step = self.window_hours / self._intervals
        warned = False

        for i in range(self._intervals + 1):
            t = i * step
            if abs(ka - ke) <= self._tolerance:
                concentration = 0.0
                if not warned:
                    warned = True
                    message = (
                        f"{self.model.name}: ka={ka} and ke={ke} are within "
                        f"{self._tolerance}; using zero concentration"
                    )
                    logger.warning(message)
                    warnings.warn(message, SingularModelWarning, stacklevel=2)
            else:
                concentration = scale * (ka / (ka - ke)) * (math.exp(-ke * t) - math.exp(-ka * t))
                concentration = max(0.0, concentration)

            metabolite = None
            if isinstance(self.model, ProdrugDrug):
                kmet = self.model.metabolite_fraction * ke
                metabolite = concentration * (1 - math.exp(-kmet * t)) * self.model.modifier * self.model.metabolite_weight
                metabolite = max(0.0, metabolite)

            yield PKSeriesPoint(
                time_hours=t,
                concentration=concentration,
                metabolite_concentration=metabolite,
                toxicity_threshold=p.toxicity_threshold,
                efficacy_floor=p.efficacy_floor,
            )

    def points(self) -> List[PKSeriesPoint]:
        return list(self)

    def summary(self) -> PKSummary:
        pts = self.points()
        peak = max(pts, key=lambda pt: pt.concentration)
        auc = sum(
            (b.time_hours - a.time_hours) * (a.concentration + b.concentration) / 2
            for a, b in zip(pts, pts[1:])
        )
        return PKSummary(
            cmax=peak.concentration,
            tmax_hours=peak.time_hours,
            auc=auc,
            exceeds_toxicity=peak.concentration > self.model.params.toxicity_threshold,
            below_efficacy=peak.concentration < self.model.params.efficacy_floor,
        )

    @property
    def clearance_label(self) -> str:
        return clearance_label(self.phenotype)


class PKSimulator:
    """Builds drug models from the guideline PK table and simulates them."""

    def __init__(self, tables: Optional[GuidelineDataset] = None, config: Optional[PKConfig] = None):
        self.tables = tables or get_guidelines()
        self.config = config

    def drug_model(self, drug: str, phenotype: Union[PhenotypeLabel, PhenotypeCode, str, None]) -> DrugModel:
        name = drug.strip().upper()
        table = self.tables.pk_parameters
        params = self.tables.get_pk_parameters(name)
        if params is None:
            logger.info("No PK parameters for %s; using defaults", name)
            params = table.default

        # Unknown drugs are modelled as clearance drugs
        pathway = Pathway.ACTIVATION if self.tables.is_prodrug(name) else Pathway.CLEARANCE

        key = MODIFIER_KEYS.get(normalize_phenotype(phenotype))
        modifier = table.modifiers[pathway].get(key, 1.0) if key else 1.0

        if pathway == Pathway.ACTIVATION:
            return ProdrugDrug(
                name=name,
                params=params,
                modifier=modifier,
                metabolite_fraction=table.prodrug_metabolite.ke_fraction,
                metabolite_weight=table.prodrug_metabolite.weight,
            )
        return ClearanceDrug(name=name, params=params, modifier=modifier)

    def simulate(
        self,
        drug: str,
        phenotype: Union[PhenotypeLabel, PhenotypeCode, str, None],
        time_window_hours: Optional[float] = None,
    ) -> PKSeries:
        config = self.config or get_pk_config()
        model = self.drug_model(drug, phenotype)

        if time_window_hours is None:
            window = select_time_window(model.params.half_life_hours, config)
        elif not math.isfinite(time_window_hours) or time_window_hours <= 0:
            raise ValueError(f"time window must be a positive finite number, got {time_window_hours}")
        else:
            window = float(time_window_hours)

        return PKSeries(model, normalize_phenotype(phenotype), window, config)
