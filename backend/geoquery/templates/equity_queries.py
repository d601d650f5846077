"""
Pre-built equity analysis query templates.

Ready-to-run StructuredQuery examples for common housing equity analyses.
They can be submitted unchanged to /api/query or offered as starting
points in the UI. Every template query is validated when this module is
imported, so a malformed template fails at startup rather than per request.
"""

from dataclasses import dataclass
from enum import Enum
from typing import Any, Dict, Iterable, List, Optional

from geoquery.query.models import StructuredQuery


class TemplateCategory(str, Enum):
    HOUSING = "housing"
    DISPLACEMENT = "displacement"
    ACCESS = "access"
    RISK = "risk"
    OPPORTUNITY = "opportunity"


@dataclass(frozen=True)
class QueryTemplate:
    """Template metadata for UI display"""
    id: str
    name: str
    description: str
    category: TemplateCategory
    query: StructuredQuery
    explanation: str
    data_requirements: List[str]

    def is_available(self, loaded_layers: Iterable[str]) -> bool:
        loaded = set(loaded_layers)
        return all(layer in loaded for layer in self.data_requirements)

    def summary(self) -> Dict[str, Any]:
        return {
            "id": self.id,
            "name": self.name,
            "description": self.description,
            "category": self.category.value,
            "dataRequirements": list(self.data_requirements),
        }

    def to_dict(self) -> Dict[str, Any]:
        result = self.summary()
        result["query"] = self.query.to_wire()
        result["explanation"] = self.explanation
        return result


RESIDENTIAL_ZONING = ["R-1", "R-2", "R-3", "R-4"]
LOW_INCOME_TRACTS = [{"field": "median_income", "op": "lt", "value": 50000}]


def _template(
    id: str,
    name: str,
    description: str,
    category: TemplateCategory,
    query: Dict[str, Any],
    explanation: str,
    data_requirements: List[str],
) -> QueryTemplate:
    return QueryTemplate(
        id=id,
        name=name,
        description=description,
        category=category,
        query=StructuredQuery.model_validate(query),
        explanation=explanation,
        data_requirements=data_requirements,
    )


EQUITY_TEMPLATES: List[QueryTemplate] = [
    # Displacement pressure
    _template(
        "str-density-by-tract",
        "Short-Term Rental Density by Census Tract",
        "Identifies census tracts with high concentrations of short-term rentals, "
        "which may indicate displacement pressure on long-term residents.",
        TemplateCategory.DISPLACEMENT,
        {
            "selectLayer": "short_term_rentals",
            "aggregate": {
                "groupBy": ["census_tract_geoid"],
                "metrics": [
                    {"field": "*", "op": "count", "alias": "str_count"},
                    {"field": "price_per_night", "op": "avg", "alias": "avg_price"},
                ],
            },
        },
        "High STR density can reduce available housing for residents and drive up rents. "
        "Compare with median income to identify equity concerns.",
        ["short_term_rentals"],
    ),
    _template(
        "evictions-low-income",
        "Eviction Filings in Low-Income Areas",
        "Maps eviction filings in census tracts with below-median income to identify displacement hotspots.",
        TemplateCategory.DISPLACEMENT,
        {
            "selectLayer": "eviction_filings",
            "spatialFilters": [
                {"op": "within", "targetLayer": "census_tracts", "targetFilter": LOW_INCOME_TRACTS},
            ],
        },
        "Eviction concentrations in low-income areas signal housing instability and potential need "
        "for tenant protections or rental assistance.",
        ["eviction_filings", "census_tracts"],
    ),
    _template(
        "vacancy-hotspots",
        "Vacancy Hotspots",
        "Identifies areas with high vacancy rates that may indicate speculation or abandonment.",
        TemplateCategory.DISPLACEMENT,
        {
            "selectLayer": "vacancy_status",
            "attributeFilters": [{"field": "vacant", "op": "eq", "value": True}],
            "aggregate": {
                "groupBy": ["vacancy_type"],
                "metrics": [{"field": "*", "op": "count", "alias": "vacant_count"}],
            },
        },
        "Distinguishing seasonal vs long-term vacancy helps identify speculative holdings vs second homes.",
        ["vacancy_status"],
    ),
    # Housing access and opportunity
    _template(
        "affordable-near-transit",
        "Affordable Housing Near Transit",
        "Identifies affordable housing units within walking distance of transit stops.",
        TemplateCategory.ACCESS,
        {
            "selectLayer": "affordable_housing_units",
            "spatialFilters": [
                {"op": "within_distance", "targetLayer": "transit_access", "distance": 800},  # ~10 minute walk
            ],
        },
        "Transit access is critical for low-income residents who may not own cars. "
        "This shows which affordable units have good transit connectivity.",
        ["affordable_housing_units", "transit_access"],
    ),
    _template(
        "affordable-near-schools",
        "Affordable Housing Near Schools",
        "Maps affordable housing units relative to school zones for families with children.",
        TemplateCategory.ACCESS,
        {
            "selectLayer": "affordable_housing_units",
            "spatialFilters": [
                {
                    "op": "within_distance",
                    "targetLayer": "school_zones",
                    "targetFilter": [{"field": "school_type", "op": "in", "value": ["elementary", "middle"]}],
                    "distance": 1600,  # ~1 mile
                },
            ],
        },
        "Proximity to quality schools is a key factor in housing choice for families. "
        "This identifies affordable options near schools.",
        ["affordable_housing_units", "school_zones"],
    ),
    _template(
        "expiring-deed-restrictions",
        "Affordable Units with Expiring Deed Restrictions",
        "Identifies affordable housing units whose deed restrictions expire in the next 5 years, "
        "representing preservation priorities.",
        TemplateCategory.OPPORTUNITY,
        {
            "selectLayer": "affordable_housing_units",
            "attributeFilters": [
                {"field": "deed_restricted", "op": "eq", "value": True},
                {"field": "restriction_expires", "op": "lt", "value": "2030-01-01"},
            ],
            "orderBy": {"field": "restriction_expires", "direction": "asc"},
        },
        "Units with expiring restrictions may convert to market rate, reducing affordable housing stock. "
        "Early identification enables preservation efforts.",
        ["affordable_housing_units"],
    ),
    _template(
        "vacant-near-transit",
        "Vacant Parcels Near Transit (Development Opportunity)",
        "Identifies vacant or underutilized parcels near transit that could support affordable housing development.",
        TemplateCategory.OPPORTUNITY,
        {
            "selectLayer": "parcels",
            "attributeFilters": [{"field": "land_use", "op": "like", "value": "%vacant%"}],
            "spatialFilters": [{"op": "within_distance", "targetLayer": "transit_access", "distance": 800}],
        },
        "Transit-oriented development on vacant parcels can provide affordable housing with lower "
        "transportation costs for residents.",
        ["parcels", "transit_access"],
    ),
    # Environmental risk
    _template(
        "flood-risk-low-income",
        "Flood Risk in Low-Income Census Tracts",
        "Identifies residential parcels in flood zones within low-income areas.",
        TemplateCategory.RISK,
        {
            "selectLayer": "parcels",
            "attributeFilters": [{"field": "zoning", "op": "in", "value": RESIDENTIAL_ZONING}],
            "spatialFilters": [
                {
                    "op": "intersects",
                    "targetLayer": "flood_zones",
                    "targetFilter": [{"field": "flood_risk_level", "op": "in", "value": ["high", "moderate"]}],
                },
                {"op": "within", "targetLayer": "census_tracts", "targetFilter": LOW_INCOME_TRACTS},
            ],
            "spatialLogic": "and",
        },
        "Low-income residents often live in higher-risk areas and have fewer resources to recover "
        "from flooding. This identifies vulnerable populations.",
        ["parcels", "flood_zones", "census_tracts"],
    ),
    _template(
        "arroyo-proximity",
        "Housing Near Arroyos (Flash Flood Risk)",
        "Identifies residential properties near arroyos, which pose flash flood risk in the desert Southwest.",
        TemplateCategory.RISK,
        {
            "selectLayer": "parcels",
            "attributeFilters": [{"field": "zoning", "op": "in", "value": RESIDENTIAL_ZONING}],
            "spatialFilters": [
                {
                    "op": "within_distance",
                    "targetLayer": "hydrology",
                    "targetFilter": [{"field": "type", "op": "eq", "value": "arroyo"}],
                    "distance": 100,
                },
            ],
        },
        "Arroyos can flood rapidly during monsoon season. Properties within 100m may face elevated "
        "risk not captured by FEMA maps.",
        ["parcels", "hydrology"],
    ),
    _template(
        "wildfire-affordable",
        "Affordable Housing in Wildfire Risk Zones",
        "Identifies affordable housing units in areas with elevated wildfire risk.",
        TemplateCategory.RISK,
        {
            "selectLayer": "affordable_housing_units",
            "spatialFilters": [
                {
                    "op": "intersects",
                    "targetLayer": "wildfire_risk",
                    "targetFilter": [{"field": "risk_level", "op": "in", "value": ["extreme", "high"]}],
                },
            ],
        },
        "Affordable housing in wildfire zones faces both physical risk and potential insurance and "
        "maintenance cost increases.",
        ["affordable_housing_units", "wildfire_risk"],
    ),
    # Housing stock
    _template(
        "renter-majority-tracts",
        "Renter-Majority Census Tracts",
        "Identifies census tracts where renters outnumber homeowners.",
        TemplateCategory.HOUSING,
        {
            "selectLayer": "census_tracts",
            "attributeFilters": [{"field": "pct_renter", "op": "gt", "value": 50}],
            "orderBy": {"field": "pct_renter", "direction": "desc"},
        },
        "Renter-majority areas may benefit from tenant protections and are more vulnerable to "
        "displacement from rising rents.",
        ["census_tracts"],
    ),
    _template(
        "high-value-low-income",
        "Gentrification Pressure (High Value in Low Income Areas)",
        "Identifies parcels with high assessed values in low-income census tracts, potentially "
        "indicating gentrification.",
        TemplateCategory.HOUSING,
        {
            "selectLayer": "parcels",
            "attributeFilters": [{"field": "assessed_value", "op": "gt", "value": 500000}],
            "spatialFilters": [
                {"op": "within", "targetLayer": "census_tracts", "targetFilter": LOW_INCOME_TRACTS},
            ],
        },
        "High-value properties in low-income areas may signal gentrification pressure that could "
        "displace existing residents.",
        ["parcels", "census_tracts"],
    ),
    _template(
        "historic-district-housing",
        "Housing in Historic Districts",
        "Identifies residential parcels within historic districts, which may face development restrictions.",
        TemplateCategory.HOUSING,
        {
            "selectLayer": "parcels",
            "attributeFilters": [{"field": "zoning", "op": "in", "value": RESIDENTIAL_ZONING}],
            "spatialFilters": [{"op": "within", "targetLayer": "historic_districts"}],
        },
        "Historic preservation requirements can increase housing costs and limit affordable "
        "development options.",
        ["parcels", "historic_districts"],
    ),
]


def get_template_by_id(template_id: str) -> Optional[QueryTemplate]:
    for template in EQUITY_TEMPLATES:
        if template.id == template_id:
            return template
    return None


def get_templates_by_category(category: TemplateCategory) -> List[QueryTemplate]:
    return [t for t in EQUITY_TEMPLATES if t.category == category]


def get_available_templates(loaded_layers: Iterable[str]) -> List[QueryTemplate]:
    """Templates whose data requirements are all loaded."""
    loaded = list(loaded_layers)
    return [t for t in EQUITY_TEMPLATES if t.is_available(loaded)]


def get_templates_grouped() -> Dict[str, List[QueryTemplate]]:
    grouped: Dict[str, List[QueryTemplate]] = {}
    for template in EQUITY_TEMPLATES:
        grouped.setdefault(template.category.value, []).append(template)
    return grouped
