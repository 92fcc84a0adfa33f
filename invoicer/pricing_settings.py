"""
Persisted overrides for the concrete leveling PricingConfig.

Defaults come from code + environment (price per pound bounds); the business
can retune any field at runtime. Only fields that differ from the defaults
are stored, one row per field.
"""

import logging

from pydantic import ValidationError
from sqlalchemy.orm import Session

from . import models
from .calculators.concrete_leveling import PricingConfig
from .config import settings

logger = logging.getLogger(__name__)


class InvalidPricingConfig(ValueError):
    pass


def default_pricing_config() -> PricingConfig:
    return PricingConfig(
        price_per_pound_low=settings.PRICE_PER_POUND_LOW,
        price_per_pound_high=settings.PRICE_PER_POUND_HIGH,
    )


def merge_overrides(base: dict, overrides: dict) -> dict:
    """Overlay overrides on base, one level deep for the lookup tables."""
    merged = dict(base)
    for key, value in overrides.items():
        current = merged.get(key)
        if isinstance(current, dict) and isinstance(value, dict):
            table = dict(current)
            for name, entry in value.items():
                name = str(name)
                if isinstance(table.get(name), dict) and isinstance(entry, dict):
                    table[name] = {**table[name], **entry}
                else:
                    table[name] = entry
            merged[key] = table
        else:
            merged[key] = value
    return merged


def build_pricing_config(overrides: dict) -> PricingConfig:
    """Defaults merged with overrides. Raises InvalidPricingConfig."""
    defaults = default_pricing_config().model_dump(mode="json")
    unknown = set(overrides) - set(defaults)
    if unknown:
        raise InvalidPricingConfig("Unknown pricing settings: %s" % ", ".join(sorted(unknown)))
    try:
        return PricingConfig(**merge_overrides(defaults, overrides))
    except ValidationError as e:
        raise InvalidPricingConfig(str(e)) from e


def load_pricing_config(db: Session) -> PricingConfig:
    """
    Defaults overlaid with stored overrides. Stored rows that no longer
    validate against the current defaults are skipped with a warning.
    """
    stored = {}
    for row in db.query(models.PricingSetting).order_by(models.PricingSetting.key).all():
        if row.key in PricingConfig.model_fields:
            stored[row.key] = row.value
        else:
            logger.warning("Ignoring unknown pricing setting %r", row.key)
    try:
        return build_pricing_config(stored)
    except InvalidPricingConfig:
        pass

    applied = {}
    for key, value in stored.items():
        candidate = dict(applied, **{key: value})
        try:
            build_pricing_config(candidate)
        except InvalidPricingConfig as e:
            logger.warning("Ignoring invalid pricing setting %r=%r: %s", key, value, e)
            continue
        applied = candidate
    return build_pricing_config(applied)


def update_pricing_config(db: Session, overrides: dict) -> PricingConfig:
    """
    Validate and persist overrides. Raises InvalidPricingConfig without
    touching the database if the merged config is invalid.
    """
    current = load_pricing_config(db).model_dump(mode="json")
    unknown = set(overrides) - set(current)
    if unknown:
        raise InvalidPricingConfig("Unknown pricing settings: %s" % ", ".join(sorted(unknown)))

    # Table overrides patch single cells; the rest of the table is kept
    try:
        config = PricingConfig(**merge_overrides(current, overrides))
    except ValidationError as e:
        raise InvalidPricingConfig(str(e)) from e

    # Store the normalised (validated) values, e.g. int keys for complexity_factors
    defaults = default_pricing_config().model_dump()
    validated = config.model_dump(mode="json")
    normalised = config.model_dump()
    for key in overrides:
        row = db.query(models.PricingSetting).filter(models.PricingSetting.key == key).first()
        if normalised[key] == defaults[key]:
            if row:
                db.delete(row)
            continue
        if row:
            row.value = validated[key]
        else:
            db.add(models.PricingSetting(key=key, value=validated[key]))
    db.commit()
    logger.info("Pricing settings updated: %s", ", ".join(sorted(overrides)))
    return config


def reset_pricing_config(db: Session) -> PricingConfig:
    """Drop every override."""
    removed = db.query(models.PricingSetting).delete()
    db.commit()
    logger.info("Pricing settings reset (%d overrides removed)", removed)
    return default_pricing_config()
