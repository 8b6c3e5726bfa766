# cyber_hub/models.py
from __future__ import annotations

from dataclasses import dataclass
from typing import Generic, List, Literal, Optional, TypeVar, Union

from pydantic import BaseModel, Field, field_validator

T = TypeVar("T")

InventionStatus = Literal["Experimental", "Prototype", "Stable", "Classified"]
RiskLevel = Literal["Low", "Medium", "High", "Critical"]


# -----------------------
# Hub records (persisted)
# -----------------------

class Invention(BaseModel):
    # field names follow the records written by the browser build
    id: str = Field(min_length=1)
    name: str
    description: str = ""
    category: str = ""
    status: InventionStatus = "Prototype"
    quantumStability: int = Field(ge=0, le=100)
    energyOutput: int = Field(ge=0, le=100)
    cyberSync: int = Field(ge=0, le=100)
    tags: List[str] = Field(default_factory=list)
    resonance: int = Field(default=0, ge=0)
    notes: str = ""
    imageUrl: Optional[str] = None


class SuitUpgrade(BaseModel):
    id: str
    name: str
    description: str = ""
    level: int = Field(ge=1)
    maxLevel: int = Field(ge=1)
    cost: int = Field(ge=0)
    benefitLabel: str = ""
    icon: str = ""


class HubSnapshot(BaseModel):
    """
    Everything the hub persists under its storage key.
    Absent fields are filled by HubStorage/HubState from the hub policy.
    """

    inventions: List[Invention] = Field(default_factory=list)
    essence: Optional[int] = Field(default=None, ge=0)
    upgrades: Optional[List[SuitUpgrade]] = None

    @field_validator("inventions", mode="before")
    @classmethod
    def _null_inventions_as_empty(cls, value):
        return [] if value is None else value


class InventionDraft(BaseModel):
    """Caller-controlled content of a new invention."""

    name: str
    description: str = ""
    category: str = ""
    tags: List[str] = Field(default_factory=list)
    imageUrl: Optional[str] = None


# -----------------------
# Generative service replies
# -----------------------

class Vulnerability(BaseModel):
    type: str
    description: str = ""
    mitigation: str = ""


class SecurityAudit(BaseModel):
    riskLevel: RiskLevel
    encryptionStrength: int = Field(ge=0, le=100)
    integrityScore: int = Field(ge=0, le=100)
    vulnerabilities: List[Vulnerability] = Field(default_factory=list)


class SynthesisReply(BaseModel):
    title: Optional[str] = None
    content: Optional[str] = None
    category: Optional[str] = None
    tags: Optional[List[str]] = None


class ThreatSource(BaseModel):
    title: str = ""
    uri: str


class CyberThreat(BaseModel):
    title: str
    severity: RiskLevel
    summary: str = ""
    sources: List[ThreatSource] = Field(default_factory=list)


class ThreatFeedReply(BaseModel):
    threats: List[CyberThreat] = Field(default_factory=list)


# -----------------------
# Adapter outcomes
# -----------------------

@dataclass(frozen=True)
class Ok(Generic[T]):
    value: T

    @property
    def ok(self) -> bool:
        return True


@dataclass(frozen=True)
class Err:
    reason: str

    @property
    def ok(self) -> bool:
        return False


Result = Union[Ok[T], Err]
