"""
Pydantic schemas for the untyped model boundary.

Model output is parsed into a plain dict first, then validated here before
it becomes a core record. Unknown keys are ignored.
"""

from typing import Any, Dict, List, Literal, Optional

from pydantic import BaseModel, ConfigDict, Field, field_validator


class _BoundaryModel(BaseModel):
    model_config = ConfigDict(populate_by_name=True, extra="ignore")


class VisionExtraction(_BoundaryModel):
    """Vehicle details the vision model is asked to return."""

    vehicle_color: Optional[str] = Field(default=None, alias="vehicleColor")
    vehicle_model: Optional[str] = Field(default=None, alias="vehicleModel")
    plate_number: Optional[str] = Field(default=None, alias="plateNumber")
    damage_area: Optional[str] = Field(default=None, alias="damageArea")
    damage_description: Optional[str] = Field(default=None, alias="damageDescription")

    @field_validator("*", mode="after")
    @classmethod
    def blank_to_none(cls, v: Optional[str]) -> Optional[str]:
        if isinstance(v, str) and not v.strip():
            return None
        return v


class DocumentExtraction(_BoundaryModel):
    """Claim and incident fields the document model is asked to return."""

    incident_date: Optional[str] = Field(default=None, alias="incidentDate")
    vehicle_number: Optional[str] = Field(default=None, alias="vehicleNumber")
    vehicle_color: Optional[str] = Field(default=None, alias="vehicleColor")
    vehicle_model: Optional[str] = Field(default=None, alias="vehicleModel")
    vehicle_year: Optional[str] = Field(default=None, alias="vehicleYear")
    policyholder_name: Optional[str] = Field(default=None, alias="policyholderName")
    policyholder_license_number: Optional[str] = Field(default=None, alias="policyholderLicenseNumber")
    policyholder_address: Optional[str] = Field(default=None, alias="policyholderAddress")
    damage_description: Optional[str] = Field(default=None, alias="damageDescription")
    accident_location: Optional[str] = Field(default=None, alias="accidentLocation")
    additional_info: Optional[Dict[str, Any]] = Field(default=None, alias="additionalInfo")

    def to_fields(self) -> Dict[str, Any]:
        """Fields the model actually returned, keyed by their wire names."""
        return self.model_dump(by_alias=True, exclude_unset=True)


class DecisionPayload(_BoundaryModel):
    """
    Claim decision as returned by the decision model.

    ``decision`` and ``confidence`` are mandatory; the remaining fields are
    repaired rather than rejected. Confidence is range-checked by the caller.
    """

    decision: Literal["Approved", "Rejected"]
    confidence: float = Field(allow_inf_nan=False)
    reasoning: str = "No reasoning provided"
    policy_references: List[str] = Field(default_factory=list, alias="policyReferences")
    key_factors: List[str] = Field(default_factory=list, alias="keyFactors")

    @field_validator("reasoning", mode="before")
    @classmethod
    def default_reasoning(cls, v: Any) -> Any:
        if v is None or (isinstance(v, str) and not v.strip()):
            return "No reasoning provided"
        return v

    @field_validator("policy_references", "key_factors", mode="before")
    @classmethod
    def coerce_string_list(cls, v: Any) -> Any:
        if v is None:
            return []
        if isinstance(v, str):
            return [v]
        if isinstance(v, list):
            return [item if isinstance(item, str) else str(item) for item in v if item is not None]
        return v
