"""Evidence data models produced by the extractors and the policy retriever."""

from dataclasses import dataclass, field, fields
from typing import Any, Dict, Optional


@dataclass(frozen=True)
class VisionRecord:
    """
    Vehicle and damage attributes observed in one image.

    Every field is independently optional; an all-None record is what a
    failed extraction produces.

    Attributes:
        vehicle_color: Color of the vehicle
        vehicle_model: Make and model (e.g. "Toyota Camry")
        plate_number: License plate or registration number
        damage_area: Damaged area(s) of the vehicle
        damage_description: Description of the damage and overall condition
    """
    vehicle_color: Optional[str] = None
    vehicle_model: Optional[str] = None
    plate_number: Optional[str] = None
    damage_area: Optional[str] = None
    damage_description: Optional[str] = None

    @classmethod
    def empty(cls) -> "VisionRecord":
        return cls()

    def is_empty(self) -> bool:
        return all(getattr(self, f.name) is None for f in fields(self))

    def to_dict(self) -> Dict[str, Optional[str]]:
        return {
            "vehicleColor": self.vehicle_color,
            "vehicleModel": self.vehicle_model,
            "plateNumber": self.plate_number,
            "damageArea": self.damage_area,
            "damageDescription": self.damage_description,
        }


@dataclass(frozen=True)
class DocumentRecord:
    """
    Text and structured fields extracted from one document.

    Attributes:
        raw_text: Full text extracted from the document ("" on failure)
        extracted_fields: Field name to nullable value; empty when nothing was extracted
    """
    raw_text: str = ""
    extracted_fields: Dict[str, Any] = field(default_factory=dict)

    @classmethod
    def empty(cls) -> "DocumentRecord":
        return cls()

    def is_empty(self) -> bool:
        return not self.raw_text and not self.extracted_fields

    def to_dict(self) -> Dict[str, Any]:
        return {
            "rawText": self.raw_text,
            "extractedFields": dict(self.extracted_fields),
        }


@dataclass(frozen=True)
class PolicyChunk:
    """
    One retrievable fragment of policy text.

    Attributes:
        id: Chunk identifier from the index metadata
        content: Policy text
        metadata: Remaining index metadata (includes the ``source`` tag)
        score: Similarity score; higher is more relevant
    """
    id: str
    content: str
    metadata: Dict[str, Any] = field(default_factory=dict)
    score: float = 0.0

    def to_dict(self) -> Dict[str, Any]:
        return {
            "id": self.id,
            "content": self.content,
            "metadata": dict(self.metadata),
            "score": self.score,
        }
