"""Conversion engine configuration."""

from decimal import Decimal

from pydantic import BaseModel, Field

from core.models.conversion import EntityType


class ConversionConfig(BaseModel):
    """
    Tunables for validation rules, step mapping and workflow lookups.

    Amounts are in the entity's own currency; day counts are whole days.
    """

    # Project types
    project_type_mapping: dict[EntityType, str] = Field(
        default_factory=lambda: {
            EntityType.DEAL: "Sales Deal",
            EntityType.LEAD: "Lead Qualification and Conversion Process",
        },
        description="Project type name to bind new entities of each type to",
    )

    # Validation
    low_score_threshold: int = Field(
        default=50,
        description="Leads scoring below this get a LOW_SCORE warning",
        ge=0,
        le=100,
    )
    high_probability_threshold: float = Field(
        default=0.9,
        description="Deals at or above this probability get a HIGH_PROBABILITY warning",
        ge=0,
        le=1,
    )
    premature_conversion_days: int = Field(
        default=7,
        description="Deals younger than this get a PREMATURE_CONVERSION warning",
        ge=0,
    )

    # Step mapping (lead -> deal)
    advanced_lead_score: int = Field(
        default=80,
        description="Score at which a lead enters the deal workflow at scoping/proposal",
        ge=0,
        le=100,
    )
    qualified_lead_score: int = Field(
        default=60,
        description="Score at which a valued lead enters at the qualified step",
        ge=0,
        le=100,
    )

    # Step mapping (deal -> lead)
    hot_deal_amount: Decimal = Field(
        default=Decimal("10000"),
        description="Amount above which a recently active deal maps to a hot lead",
        ge=0,
    )
    qualified_deal_amount: Decimal = Field(
        default=Decimal("1000"),
        description="Amount above which a deal maps to a qualified lead",
        ge=0,
    )
    recent_activity_days: int = Field(
        default=30,
        description="Window for counting a deal's activity as recent",
        ge=1,
    )

    # Converted markers
    converted_to_deal_status: str = Field(
        default="Converted to Deal",
        description="Status name marking a lead that became a deal",
    )
    converted_to_lead_status: str = Field(
        default="Converted to Lead",
        description="Status name marking a deal that went back to being a lead",
    )

    default_currency: str = Field(default="USD", min_length=3, max_length=3)
