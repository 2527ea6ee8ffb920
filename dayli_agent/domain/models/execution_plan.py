from typing import Dict, Any, List, Optional, Literal
from pydantic import AliasChoices, BaseModel, ConfigDict, Field, field_validator
from pydantic.alias_generators import to_camel
from enum import Enum


class ExecutionType(str, Enum):
    """How a plan is carried out"""
    SINGLE = "single"
    WORKFLOW = "workflow"
    MULTI_STEP = "multi_step"


class PlanModel(BaseModel):
    """Plan parts are exchanged with the model in camelCase"""
    model_config = ConfigDict(alias_generator=to_camel, populate_by_name=True)


class Intent(PlanModel):
    primary: str = Field(description="Primary user intent, e.g. 'reschedule_block'")
    confidence: float = Field(ge=0.0, le=1.0)
    reasoning: str = Field(default="", description="Why this interpretation was chosen")


class PlanStep(PlanModel):
    """One step of a multi-step plan"""
    capability: str = Field(validation_alias=AliasChoices("capability", "tool"))
    parameters: Dict[str, Any] = Field(default_factory=dict)
    depends_on: List[int] = Field(default_factory=list, description="Indices of earlier steps")


class Execution(PlanModel):
    type: ExecutionType
    capability: Optional[str] = Field(None, validation_alias=AliasChoices("capability", "tool"))
    workflow_name: Optional[str] = Field(None, validation_alias=AliasChoices("workflowName", "workflow_name", "workflow"))
    parameters: Optional[Dict[str, Any]] = None
    steps: Optional[List[PlanStep]] = None

    @field_validator("type", mode="before")
    @classmethod
    def _conversation_is_single(cls, value: Any) -> Any:
        # A plain conversational answer is a single execution without a capability
        if value == "conversation":
            return ExecutionType.SINGLE
        return value

    @property
    def target(self) -> Optional[str]:
        """Capability name the dispatcher looks up"""
        if self.type == ExecutionType.WORKFLOW:
            return self.workflow_name
        return self.capability


class ResolvedValue(PlanModel):
    """Natural language mapped to a concrete value"""
    original: str
    resolved: str
    confidence: float = Field(ge=0.0, le=1.0)


class ResolvedEntity(ResolvedValue):
    type: Literal["block", "task", "email", "meeting"]


class ResolvedReferences(PlanModel):
    dates: List[ResolvedValue] = Field(default_factory=list)
    times: List[ResolvedValue] = Field(default_factory=list)
    blocks: List[ResolvedValue] = Field(default_factory=list)
    entities: List[ResolvedEntity] = Field(default_factory=list)

    def all_resolutions(self) -> List[ResolvedValue]:
        return [*self.dates, *self.times, *self.blocks, *self.entities]


class AmbiguityOption(PlanModel):
    value: Any = None
    display: str


class Ambiguity(PlanModel):
    """Something the user must clarify before anything runs"""
    type: str = "unclear"
    message: str
    options: List[AmbiguityOption] = Field(default_factory=list)


class PlanMetadata(PlanModel):
    processing_time_ms: float = 0.0
    context_used: List[str] = Field(default_factory=list)
    confidence: float = Field(default=0.0, ge=0.0, le=1.0)
    source: Literal["model", "fallback"] = "model"


class ExecutionPlan(PlanModel):
    """Structured, fully-resolved interpretation of one utterance"""
    intent: Intent
    execution: Execution
    resolved: ResolvedReferences = Field(default_factory=ResolvedReferences)
    ambiguities: List[Ambiguity] = Field(default_factory=list)
    metadata: PlanMetadata = Field(default_factory=PlanMetadata)

    @field_validator("ambiguities", mode="before")
    @classmethod
    def _accept_plain_messages(cls, value: Any) -> Any:
        if value is None:
            return []
        if isinstance(value, list):
            return [{"message": item} if isinstance(item, str) else item for item in value]
        return value

    @property
    def needs_clarification(self) -> bool:
        return len(self.ambiguities) > 0
