"""
Declared schemas for every layer the service knows about.

A layer being declared here does not mean it is loaded: the runtime
registry (see registry.py) decides that from the manifest and the tables
actually present in the database.
"""

from dataclasses import dataclass, field
from typing import Dict, List, Optional


# Internal geometry columns, never exposed as queryable fields
GEOGRAPHIC_COLUMN = "geom_4326"
PROJECTED_COLUMN = "geom_utm13"
INTERNAL_FIELDS = frozenset({GEOGRAPHIC_COLUMN, PROJECTED_COLUMN, "geometry", "geom"})

# Fields that exist only as concepts and are rewritten before compilation
VIRTUAL_FIELDS: Dict[str, List[str]] = {
    "zoning_districts": ["allows_residential", "allows_commercial"],
}


@dataclass(frozen=True)
class LayerSchema:
    """Declared schema of a layer"""
    name: str
    geometry_type: str  # "Point", "LineString", "Polygon" or "Polygon | Point"
    fields: Dict[str, str] = field(default_factory=dict)
    description: Optional[str] = None


def _schema(name: str, geometry_type: str, description: str, /, **fields: str) -> LayerSchema:
    # positional-only: layers declare fields called "name" and "description"
    return LayerSchema(name=name, geometry_type=geometry_type, fields=dict(fields), description=description)


LAYER_SCHEMAS: Dict[str, LayerSchema] = {
    schema.name: schema
    for schema in [
        _schema(
            "parcels", "Polygon", "Property parcels from Santa Fe County Assessor",
            parcel_id="string",
            address="string | null",
            zoning="string",
            land_use="string",
            acres="number",
            year_built="number | null",
            assessed_value="number | null",
        ),
        _schema(
            "census_tracts", "Polygon", "US Census tracts with demographic and housing data",
            geoid="string",
            name="string",
            total_population="number",
            median_income="number | null",
            median_age="number | null",
            pct_renter="number | null",
            total_housing_units="number | null",
            owner_occupied_units="number | null",
            renter_occupied_units="number | null",
            vacant_units="number | null",
        ),
        _schema(
            "hydrology", "LineString", "Rivers, streams, arroyos, and acequias",
            name="string",
            type="string",  # river | stream | arroyo | acequia
            length_km="number",
        ),
        _schema(
            "zoning_districts", "Polygon", "Zoning districts with development regulations",
            zone_code="string",
            zone_name="string",
            description="string | null",
            allows_residential="boolean",
            allows_commercial="boolean",
            min_lot_size_acres="number | null",
            max_density_units_per_acre="number | null",
        ),
        _schema(
            "short_term_rentals", "Point", "Short-term rental listings (Airbnb/VRBO)",
            listing_id="string",
            host_id="string | null",
            property_type="string",
            room_type="string | null",
            accommodates="number | null",
            price_per_night="number | null",
            availability_365="number | null",
            last_scraped="string | null",
            source="string",
        ),
        _schema(
            "vacancy_status", "Point", "Vacancy status for residential parcels",
            parcel_id="string",
            vacancy_type="string",  # seasonal | long_term | unknown
            vacant="boolean",
            vacant_since="string | null",
            source="string",
        ),
        _schema(
            "affordable_housing_units", "Polygon | Point", "Affordable housing developments and units",
            unit_id="string",
            property_name="string | null",
            address="string",
            total_units="number",
            affordable_units="number",
            income_restriction_pct_ami="number | null",
            deed_restricted="boolean",
            restriction_expires="string | null",
            property_type="string",
        ),
        _schema(
            "eviction_filings", "Point", "Eviction filing records (geocoded addresses)",
            filing_id="string",
            case_number="string | null",
            filing_date="string",
            address="string",
            unit_number="string | null",
            eviction_type="string",
            outcome="string | null",
        ),
        _schema(
            "transit_access", "Point", "Transit stops and stations",
            stop_id="string",
            stop_name="string",
            route_ids="string[]",
            route_names="string[]",
            stop_type="string",  # bus | rail | other
            wheelchair_accessible="boolean | null",
            avg_headway_minutes="number | null",
        ),
        _schema(
            "school_zones", "Polygon", "School attendance zones",
            zone_id="string",
            school_name="string",
            school_type="string",
            district="string",
            grades="string",
        ),
        _schema(
            "historic_districts", "Polygon", "Historic preservation districts",
            district_id="string",
            district_name="string",
            designation_type="string",  # national | state | local
            designation_date="string | null",
            restrictions="string[]",
        ),
        _schema(
            "flood_zones", "Polygon", "FEMA flood hazard zones",
            zone_id="string",
            zone_code="string",
            zone_name="string",
            flood_risk_level="string",  # high | moderate | low | minimal
            base_flood_elevation="number | null",
            source="string",
        ),
        _schema(
            "wildfire_risk", "Polygon", "Wildfire risk zones",
            zone_id="string",
            risk_level="string",  # extreme | high | moderate | low
            fuel_model="string | null",
            source="string",
        ),
    ]
}


def is_numeric_type(field_type: Optional[str]) -> bool:
    """True for declared types such as "number" or "number | null"."""
    return isinstance(field_type, str) and "number" in field_type


def is_boolean_type(field_type: Optional[str]) -> bool:
    """True for declared types such as "boolean" or "boolean | null"."""
    return isinstance(field_type, str) and "boolean" in field_type
