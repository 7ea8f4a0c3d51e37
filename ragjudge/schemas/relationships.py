"""Relationship types for pairwise relationship discovery."""

from __future__ import annotations

from enum import StrEnum

from pydantic import BaseModel, Field


class RelationshipType(StrEnum):
    """Closed vocabulary of semantic relationships between two fragments."""

    SAME_TOPIC = "SameTopic"
    REFERENCES = "References"
    COMPLEMENTARY = "Complementary"
    CONTRADICTS = "Contradicts"
    PREREQUISITE = "Prerequisite"
    ELABORATES = "Elaborates"
    SUMMARIZES = "Summarizes"
    EXAMPLE_OF = "ExampleOf"
    CAUSE_EFFECT = "CauseEffect"
    TEMPORAL = "Temporal"

    @classmethod
    def parse(cls, name: str | None) -> RelationshipType | None:
        """Case-insensitive lookup by wire name; None for unknown names."""
        if not name or not name.strip():
            return None
        wanted = name.strip().lower()
        for member in cls:
            if member.value.lower() == wanted:
                return member
        return None


RELATIONSHIP_DEFINITIONS: dict[RelationshipType, str] = {
    RelationshipType.SAME_TOPIC: "Both fragments discuss the same topic or concept",
    RelationshipType.REFERENCES: "One fragment references or cites the other",
    RelationshipType.COMPLEMENTARY: "Fragments contain complementary information on the same subject",
    RelationshipType.CONTRADICTS: "Fragments contain contradictory or conflicting information",
    RelationshipType.PREREQUISITE: "Fragment A should be read before Fragment B for understanding",
    RelationshipType.ELABORATES: "Fragment B provides more detail on Fragment A's content",
    RelationshipType.SUMMARIZES: "Fragment B summarizes or abstracts Fragment A's content",
    RelationshipType.EXAMPLE_OF: "Fragments provide examples of the same concept",
    RelationshipType.CAUSE_EFFECT: "Fragments describe a cause and effect relationship",
    RelationshipType.TEMPORAL: "Fragments show a temporal or sequential relationship",
}


class Relationship(BaseModel):
    model_config = {"frozen": True}

    source_id: str
    target_id: str
    type: RelationshipType
    confidence: float = Field(ge=0.0, le=1.0)
    explanation: str | None = None
    is_bidirectional: bool = False


class RelationshipAnalysis(BaseModel):
    """Outcome of analyzing one fragment against a set of candidates.

    ``success=False`` with a partial ``relationships`` list is a valid
    terminal state, not an error.
    """

    model_config = {"frozen": True}

    fragment_id: str
    relationships: tuple[Relationship, ...] = ()
    success: bool = True
    error_message: str | None = None


def pair_key(first_id: str, second_id: str) -> tuple[str, str]:
    """Canonical key for an unordered fragment pair."""
    if first_id <= second_id:
        return (first_id, second_id)
    return (second_id, first_id)
