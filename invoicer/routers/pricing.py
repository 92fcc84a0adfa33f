"""
Pricing API: run calculators and tune the concrete leveling constants.

GET   /api/pricing/calculators     registered calculator keys
POST  /api/pricing/{calculator}    price a job from raw form fields
GET   /api/pricing/config          effective PricingConfig
PATCH /api/pricing/config          store overrides (validated)
POST  /api/pricing/config/reset    back to defaults
"""

import logging
from typing import Any, Dict

from fastapi import APIRouter, Depends, HTTPException
from sqlalchemy.orm import Session

from ..calculators.registry import get_calculator, has_calculator, list_calculators
from ..database import get_db
from ..pricing_settings import load_pricing_config, reset_pricing_config, update_pricing_config

logger = logging.getLogger(__name__)

router = APIRouter(prefix="/pricing", tags=["pricing"])


@router.get("/calculators")
def calculators():
    return {"calculators": list_calculators()}


@router.get("/config")
def get_config(db: Session = Depends(get_db)):
    return load_pricing_config(db).model_dump(mode="json")


@router.patch("/config")
def patch_config(overrides: Dict[str, Any], db: Session = Depends(get_db)):
    if not overrides:
        raise HTTPException(status_code=400, detail="No pricing settings supplied")
    return update_pricing_config(db, overrides).model_dump(mode="json")


@router.post("/config/reset")
def reset_config(db: Session = Depends(get_db)):
    return reset_pricing_config(db).model_dump(mode="json")


@router.post("/{calculator}")
def calculate(calculator: str, fields: Dict[str, Any], db: Session = Depends(get_db)):
    """
    Price a job. Returns {"calculator", "result", "line_item"}.

    Invalid input comes back as 422 {"detail", "error", "field"} via the
    CalculatorError handler in main.py.
    """
    if not has_calculator(calculator):
        raise HTTPException(status_code=404, detail=f"Unknown calculator: {calculator}")
    result = get_calculator(calculator, load_pricing_config(db)).calculate(fields)
    logger.info("Priced %s job: %s", calculator, result["line_item"]["amount"])
    return result
