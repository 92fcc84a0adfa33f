"""
Square-foot rate calculator: the traditional concrete leveling price list.

final_rate = base_rate × severity × accessibility, total = final_rate × sq ft.
Both rounded to cents at each step, matching the printed rate sheet.
"""

from .base import BaseCalculator, InvalidPriceBounds

# $/sq ft by project type. "custom" takes the caller's rate.
PROJECT_RATES = {
    "driveway": 15.00,
    "sidewalk": 12.00,
    "patio": 14.00,
    "garage": 16.00,
    "basement": 18.00,
    "steps": 20.00,
    "pool_deck": 17.00,
    "custom": None,
}

SEVERITY_MULTIPLIERS = {
    "mild": 1.0,
    "moderate": 1.3,
    "severe": 1.6,
}

ACCESSIBILITY_MULTIPLIERS = {
    "easy": 1.0,
    "moderate": 1.1,
    "difficult": 1.25,
}

PROJECT_CHOICES = {k: k for k in PROJECT_RATES}
PROJECT_CHOICES["pool-deck"] = "pool_deck"


class ConcreteSqftCalculator(BaseCalculator):

    key = "concrete_sqft"

    def calculate(self, fields: dict) -> dict:
        project_type = self.parse_choice(fields, "project_type", PROJECT_CHOICES)
        square_footage = self.require_positive(
            self.parse_number(fields, "square_footage"), "square_footage",
        )
        severity = self.parse_choice(
            fields, "severity", {k: k for k in SEVERITY_MULTIPLIERS}, default="mild",
        )
        accessibility = self.parse_choice(
            fields, "accessibility", {k: k for k in ACCESSIBILITY_MULTIPLIERS}, default="easy",
        )

        if project_type == "custom":
            base_rate = self.require_positive(
                self.parse_number(fields, "custom_rate", error=InvalidPriceBounds),
                "custom_rate", error=InvalidPriceBounds,
            )
        else:
            base_rate = PROJECT_RATES[project_type]

        severity_mult = SEVERITY_MULTIPLIERS[severity]
        access_mult = ACCESSIBILITY_MULTIPLIERS[accessibility]
        total_mult = round(severity_mult * access_mult, 2)
        final_rate = round(base_rate * total_mult, 2)
        total = round(final_rate * square_footage, 2)

        result = {
            "project_type": project_type,
            "square_footage": square_footage,
            "severity": severity,
            "accessibility": accessibility,
            "base_rate": base_rate,
            "severity_multiplier": severity_mult,
            "accessibility_multiplier": access_mult,
            "total_multiplier": total_mult,
            "final_rate": final_rate,
            "total": total,
        }
        label = project_type.replace("_", " ").title()
        return {
            "calculator": self.key,
            "result": result,
            "line_item": self.make_line_item(
                description="%s Concrete Leveling (%s settlement, %s access)" % (
                    label, severity, accessibility),
                quantity=square_footage,
                unit="sq ft",
                unit_price=final_rate,
                details=result,
            ),
        }
