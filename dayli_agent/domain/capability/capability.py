from typing import Dict, Any, Callable, List, Optional, Tuple, Type
from pydantic import BaseModel, ConfigDict, Field, field_validator
from pydantic.alias_generators import to_camel


class CapabilityParams(BaseModel):
    """Base for capability parameter schemas.

    Plans carry camelCase keys; unknown keys make the plan invalid for the
    capability.
    """
    model_config = ConfigDict(alias_generator=to_camel, populate_by_name=True, extra="forbid")


class WorkflowParams(CapabilityParams):
    """Workflows take free-form parameters"""
    model_config = ConfigDict(alias_generator=to_camel, populate_by_name=True, extra="allow")


class EntityRule(BaseModel):
    """Where a capability's affected entity ids live.

    param_field is checked first; otherwise the first result path that yields
    ids wins. A path segment ending in "[]" maps over a list.
    """
    model_config = ConfigDict(frozen=True)

    kind: str = Field(description="blocks, tasks, emails or meetings")
    param_field: Optional[str] = None
    result_paths: Tuple[str, ...] = ()


class Capability(BaseModel):
    """An executable entry in the capability registry"""
    model_config = ConfigDict(arbitrary_types_allowed=True, frozen=True)

    name: str = Field(description="Globally unique, conventionally '<category>_<verb>'")
    category: str
    description: str = ""
    parameter_schema: Type[BaseModel] = WorkflowParams
    handler: Callable[..., Any]
    timeout: Optional[float] = Field(None, description="Seconds before the call counts as timed out")
    recoverable_on_error: bool = Field(True, description="Classification for unclassified handler exceptions")
    entity_rule: Optional[EntityRule] = Field(None, description="Overrides the category's entity rule")

    @field_validator("name", "category")
    @classmethod
    def _not_blank(cls, value: str) -> str:
        if not value or not value.strip():
            raise ValueError("must not be blank")
        return value

    @property
    def is_workflow(self) -> bool:
        return self.category == "workflow"

    def parameter_names(self) -> List[str]:
        """camelCase parameter names as the model should emit them"""
        names = []
        for field_name, field in self.parameter_schema.model_fields.items():
            names.append(field.alias or field_name)
        return names

    def required_parameters(self) -> List[str]:
        return [
            field.alias or field_name
            for field_name, field in self.parameter_schema.model_fields.items()
            if field.is_required()
        ]

    def to_dict(self) -> Dict[str, Any]:
        return {
            "name": self.name,
            "category": self.category,
            "description": self.description,
            "parameters": self.parameter_names(),
            "required": self.required_parameters(),
        }
