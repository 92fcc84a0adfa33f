"""
Concrete leveling calculator: foam-injection material pricing.

Pipeline (pure math, no I/O):
    square footage -> void volume (yd³) -> foam weight (lb) -> material cost range
    -> × complexity × soil × environmental = subtotal range
    -> + equipment (travel + base fee)
    -> + labor/overhead ((subtotal + equipment) × (multiplier - 1))
    = estimated price range

Every constant lives in PricingConfig so the business can retune pricing
without a code change. See pricing_settings.py for persisted overrides.
"""

import enum
import logging
import math
from dataclasses import asdict, dataclass
from typing import Dict, Optional

from pydantic import BaseModel, model_validator

from .base import BaseCalculator, InvalidDimensions, InvalidPriceBounds, MissingSelection

logger = logging.getLogger(__name__)


class FoamType(str, enum.Enum):
    STANDARD = "standard"          # RR201
    HIGH_DENSITY = "high_density"  # RR401, heavy loads


class ApplicationType(str, enum.Enum):
    LIFT = "lift"
    VOID_FILL = "void_fill"


class SoilType(str, enum.Enum):
    CLAY = "clay"
    SAND = "sand"
    MIXED = "mixed"
    ROCK = "rock"
    ORGANIC = "organic"


class PricePoint(str, enum.Enum):
    LOW = "low"
    RECOMMENDED = "recommended"
    HIGH = "high"


# Form values seen in the field -> canonical selection
FOAM_CHOICES = {
    "standard": FoamType.STANDARD,
    "rr201": FoamType.STANDARD,
    "high_density": FoamType.HIGH_DENSITY,
    "high-density": FoamType.HIGH_DENSITY,
    "rr401": FoamType.HIGH_DENSITY,
}
APPLICATION_CHOICES = {
    "lift": ApplicationType.LIFT,
    "void_fill": ApplicationType.VOID_FILL,
    "void-fill": ApplicationType.VOID_FILL,
    "void": ApplicationType.VOID_FILL,
}
SOIL_CHOICES = {s.value: s for s in SoilType}
SOIL_CHOICES["normal"] = SoilType.MIXED
PRICE_POINT_CHOICES = {p.value: p for p in PricePoint}
PRICE_POINT_CHOICES["mid"] = PricePoint.RECOMMENDED

SIDES_LABELS = {
    1: "one side settled",
    2: "two sides / corner settled",
    3: "entire slab settled",
    4: "multiple slabs settled",
}


class PricingConfig(BaseModel):
    """Business constants for foam pricing. All values are tunable."""

    price_per_pound_low: float = 7.00
    price_per_pound_high: float = 10.00

    # lb of foam per cubic yard of void, by foam type then application
    foam_factors: Dict[str, Dict[str, float]] = {
        "standard": {"lift": 100.0, "void_fill": 70.0},
        "high_density": {"lift": 120.0, "void_fill": 110.0},
    }
    # Keyed by sides settled. A fourth tier (1.3) exists in some quoting sheets;
    # add it here to accept sides_settled=4.
    complexity_factors: Dict[int, float] = {1: 1.00, 2: 1.10, 3: 1.20}
    soil_multipliers: Dict[str, float] = {
        "clay": 1.2,
        "sand": 0.9,
        "mixed": 1.0,
        "rock": 1.4,
        "organic": 1.1,
    }
    # Weather and moisture condition factors folded into a single multiplier
    environmental_multiplier: float = 1.05

    per_mile_rate: float = 2.50   # Charged both ways
    base_fee: float = 50.00       # Equipment mobilization

    labor_multiplier_low: float = 3.33
    labor_multiplier_high: float = 5.00

    @model_validator(mode="after")
    def _check_bounds(self):
        if self.price_per_pound_low <= 0 or self.price_per_pound_high <= 0:
            raise ValueError("price per pound bounds must be positive")
        if self.price_per_pound_low > self.price_per_pound_high:
            raise ValueError("price_per_pound_low must not exceed price_per_pound_high")
        if self.labor_multiplier_low < 1 or self.labor_multiplier_low > self.labor_multiplier_high:
            raise ValueError("labor multipliers must satisfy 1 <= low <= high")
        if self.per_mile_rate <= 0:
            raise ValueError("per_mile_rate must be positive")
        if self.base_fee < 0:
            raise ValueError("base_fee must not be negative")
        if self.environmental_multiplier <= 0:
            raise ValueError("environmental_multiplier must be positive")
        for table_name in ("complexity_factors", "soil_multipliers"):
            for key, value in getattr(self, table_name).items():
                if value <= 0:
                    raise ValueError("%s[%s] must be positive" % (table_name, key))
        for foam, by_app in self.foam_factors.items():
            for app, value in by_app.items():
                if value <= 0:
                    raise ValueError("foam_factors[%s][%s] must be positive" % (foam, app))

        # Every documented selection must stay priceable
        for foam in FoamType:
            for app in ApplicationType:
                if app.value not in self.foam_factors.get(foam.value, {}):
                    raise ValueError("foam_factors[%s][%s] is required" % (foam.value, app.value))
        missing_soil = sorted(s.value for s in SoilType if s.value not in self.soil_multipliers)
        if missing_soil:
            raise ValueError("soil_multipliers missing: %s" % ", ".join(missing_soil))
        missing_tiers = sorted({1, 2, 3} - set(self.complexity_factors))
        if missing_tiers:
            raise ValueError("complexity_factors missing tiers: %s" % missing_tiers)
        return self


@dataclass(frozen=True)
class JobInput:
    length: float
    width: float
    lift_inches: float
    sides_settled: Optional[int]
    foam_type: Optional[FoamType]
    application_type: Optional[ApplicationType]
    soil_type: Optional[SoilType] = SoilType.MIXED
    travel_distance_miles: float = 0.0
    price_per_pound_low: float = 7.00
    price_per_pound_high: float = 10.00


@dataclass(frozen=True)
class PricingResult:
    job: JobInput
    square_footage: float
    void_volume_cubic_yards: float
    foam_factor: float
    material_weight_pounds: float
    material_cost_low: float
    material_cost_high: float
    complexity_factor: float
    soil_multiplier: float
    environmental_multiplier: float
    subtotal_low: float
    subtotal_high: float
    equipment_cost: float
    labor_overhead_low: float
    labor_overhead_high: float
    estimated_price_low: float
    estimated_price_high: float

    @property
    def recommended_price(self) -> float:
        return (self.estimated_price_low + self.estimated_price_high) / 2

    @property
    def price_per_sqft_low(self) -> float:
        return self.estimated_price_low / self.square_footage

    @property
    def price_per_sqft_high(self) -> float:
        return self.estimated_price_high / self.square_footage

    def price_at(self, point: PricePoint) -> float:
        if point == PricePoint.LOW:
            return self.estimated_price_low
        if point == PricePoint.HIGH:
            return self.estimated_price_high
        return self.recommended_price

    def as_dict(self) -> dict:
        """Display/persistence form. Money to cents, volume to 4 places."""
        job = asdict(self.job)
        for key in ("foam_type", "application_type", "soil_type"):
            job[key] = _enum_value(job[key])
        return {
            "inputs": job,
            "square_footage": round(self.square_footage, 2),
            "void_volume_cubic_yards": round(self.void_volume_cubic_yards, 4),
            "foam_factor": self.foam_factor,
            "material_weight_pounds": round(self.material_weight_pounds, 2),
            "material_cost_low": round(self.material_cost_low, 2),
            "material_cost_high": round(self.material_cost_high, 2),
            "complexity_factor": self.complexity_factor,
            "soil_multiplier": self.soil_multiplier,
            "environmental_multiplier": self.environmental_multiplier,
            "subtotal_low": round(self.subtotal_low, 2),
            "subtotal_high": round(self.subtotal_high, 2),
            "equipment_cost": round(self.equipment_cost, 2),
            "labor_overhead_low": round(self.labor_overhead_low, 2),
            "labor_overhead_high": round(self.labor_overhead_high, 2),
            "estimated_price_low": round(self.estimated_price_low, 2),
            "estimated_price_high": round(self.estimated_price_high, 2),
            "recommended_price": round(self.recommended_price, 2),
            "price_per_sqft_low": round(self.price_per_sqft_low, 2),
            "price_per_sqft_high": round(self.price_per_sqft_high, 2),
        }


def _enum_value(value):
    return value.value if isinstance(value, enum.Enum) else value


def _positive(value, name: str, error=InvalidDimensions) -> float:
    if value is None or not math.isfinite(value) or value <= 0:
        raise error("%s must be greater than 0, got %s" % (name, value), field=name)
    return value


def compute(job: JobInput, config: PricingConfig = None) -> PricingResult:
    """
    Price a concrete leveling job. Deterministic; raises instead of returning
    a zero-valued result for out-of-domain input.
    """
    config = config or PricingConfig()

    # 1. Preconditions
    _positive(job.length, "length")
    _positive(job.width, "width")
    _positive(job.lift_inches, "lift_inches")
    travel = job.travel_distance_miles
    if travel is None or not math.isfinite(travel) or travel < 0:
        raise InvalidDimensions(
            "travel_distance_miles must be 0 or more, got %s" % travel,
            field="travel_distance_miles",
        )
    _positive(job.price_per_pound_low, "price_per_pound_low", InvalidPriceBounds)
    _positive(job.price_per_pound_high, "price_per_pound_high", InvalidPriceBounds)
    if job.price_per_pound_low > job.price_per_pound_high:
        raise InvalidPriceBounds(
            "price_per_pound_low (%s) exceeds price_per_pound_high (%s)"
            % (job.price_per_pound_low, job.price_per_pound_high),
            field="price_per_pound_low",
        )

    foam = _enum_value(job.foam_type)
    application = _enum_value(job.application_type)
    soil = _enum_value(job.soil_type)
    if foam not in config.foam_factors:
        raise MissingSelection("foam_type is missing or unrecognised: %r" % foam, field="foam_type")
    if application not in config.foam_factors[foam]:
        raise MissingSelection(
            "application_type is missing or unrecognised: %r" % application, field="application_type"
        )
    if job.sides_settled not in config.complexity_factors:
        raise MissingSelection(
            "sides_settled must be one of %s, got %r"
            % (sorted(config.complexity_factors), job.sides_settled),
            field="sides_settled",
        )
    if soil not in config.soil_multipliers:
        raise MissingSelection("soil_type is missing or unrecognised: %r" % soil, field="soil_type")

    # 2-3. Geometry
    square_footage = job.length * job.width
    void_volume_cy = (square_footage * (job.lift_inches / 12)) / 27

    # 4-6. Material
    foam_factor = config.foam_factors[foam][application]
    weight_lbs = void_volume_cy * foam_factor
    material_low = weight_lbs * job.price_per_pound_low
    material_high = weight_lbs * job.price_per_pound_high

    # 7. Multipliers
    complexity = config.complexity_factors[job.sides_settled]
    soil_mult = config.soil_multipliers[soil]
    env_mult = config.environmental_multiplier
    subtotal_low = material_low * complexity * soil_mult * env_mult
    subtotal_high = material_high * complexity * soil_mult * env_mult

    # 8. Equipment: round trip mileage plus mobilization
    equipment = travel * 2 * config.per_mile_rate + config.base_fee

    # 9. Labor & overhead
    labor_low = (subtotal_low + equipment) * (config.labor_multiplier_low - 1)
    labor_high = (subtotal_high + equipment) * (config.labor_multiplier_high - 1)

    # 10. Totals
    result = PricingResult(
        job=job,
        square_footage=square_footage,
        void_volume_cubic_yards=void_volume_cy,
        foam_factor=foam_factor,
        material_weight_pounds=weight_lbs,
        material_cost_low=material_low,
        material_cost_high=material_high,
        complexity_factor=complexity,
        soil_multiplier=soil_mult,
        environmental_multiplier=env_mult,
        subtotal_low=subtotal_low,
        subtotal_high=subtotal_high,
        equipment_cost=equipment,
        labor_overhead_low=labor_low,
        labor_overhead_high=labor_high,
        estimated_price_low=subtotal_low + equipment + labor_low,
        estimated_price_high=subtotal_high + equipment + labor_high,
    )
    logger.debug(
        "Concrete leveling: %.1f sq ft, %.4f yd³, %.2f lb -> $%.2f-$%.2f",
        square_footage, void_volume_cy, weight_lbs,
        result.estimated_price_low, result.estimated_price_high,
    )
    return result


class ConcreteLevelingCalculator(BaseCalculator):

    key = "concrete_leveling"

    def __init__(self, config: PricingConfig = None):
        self.config = config or PricingConfig()

    def parse_job(self, fields: dict) -> JobInput:
        """Build a JobInput from form fields. Price bounds default to the configured ones."""
        sides = self.parse_number(fields, "sides_settled", error=MissingSelection)
        if sides != int(sides):
            raise MissingSelection("sides_settled must be a whole number, got %s" % sides,
                                   field="sides_settled")

        lift_key = "lift_inches" if "lift_inches" in fields else "inches_settled"
        travel_key = "travel_distance_miles" if "travel_distance_miles" in fields else "travel_distance"

        return JobInput(
            length=self.parse_number(fields, "length"),
            width=self.parse_number(fields, "width"),
            lift_inches=self.parse_number(fields, lift_key),
            sides_settled=int(sides),
            foam_type=self.parse_choice(fields, "foam_type", FOAM_CHOICES),
            application_type=self.parse_choice(fields, "application_type", APPLICATION_CHOICES),
            soil_type=self.parse_choice(fields, "soil_type", SOIL_CHOICES, default=SoilType.MIXED),
            travel_distance_miles=self.parse_number(fields, travel_key, default=0.0),
            price_per_pound_low=self.parse_number(
                fields, "price_per_pound_low", default=self.config.price_per_pound_low,
                error=InvalidPriceBounds,
            ),
            price_per_pound_high=self.parse_number(
                fields, "price_per_pound_high", default=self.config.price_per_pound_high,
                error=InvalidPriceBounds,
            ),
        )

    def compute(self, job: JobInput) -> PricingResult:
        return compute(job, self.config)

    def calculate(self, fields: dict) -> dict:
        job = self.parse_job(fields)
        result = self.compute(job)
        price_point = self.parse_choice(fields, "price_point", PRICE_POINT_CHOICES,
                                        default=PricePoint.RECOMMENDED)
        price = result.price_at(price_point)

        details = result.as_dict()
        details["price_point"] = price_point.value
        return {
            "calculator": self.key,
            "result": details,
            "line_item": self.make_line_item(
                description=describe_job(job),
                quantity=1,
                unit="job",
                unit_price=price,
                details=details,
            ),
        }


def describe_job(job: JobInput) -> str:
    """One-line service description for invoices and estimates."""
    foam = "high-density" if _enum_value(job.foam_type) == FoamType.HIGH_DENSITY.value else "standard"
    work = "void fill" if _enum_value(job.application_type) == ApplicationType.VOID_FILL.value else "lift"
    return "Concrete leveling - %g' x %g' slab (%g sq ft), %g\" %s, %s foam, %s" % (
        job.length, job.width, round(job.length * job.width, 2), job.lift_inches,
        work, foam, SIDES_LABELS.get(job.sides_settled, "%s sides settled" % job.sides_settled),
    )
