from typing import Any, Optional
import asyncio
import json
import re
import structlog
from langchain_core.language_models import BaseChatModel
from langchain_core.messages import HumanMessage, SystemMessage
from pydantic import ValidationError

from dayli_agent.domain.errors import PlanGenerationError
from dayli_agent.domain.models.execution_plan import ExecutionPlan
from dayli_agent.domain.understanding.prompt_builder import SYSTEM_ROLE

logger = structlog.get_logger(__name__)

_CODE_FENCE = re.compile(r"^```(?:json)?\s*|\s*```$", re.IGNORECASE)


def message_text(content: Any) -> str:
    """Plain text of a chat message content (string or list of content parts)"""
    if isinstance(content, str):
        return content
    if isinstance(content, list):
        parts = []
        for part in content:
            if isinstance(part, str):
                parts.append(part)
            elif isinstance(part, dict) and part.get("type") == "text":
                parts.append(part.get("text", ""))
        return "".join(parts)
    return str(content)


def parse_plan(text: str) -> ExecutionPlan:
    """Validate model output against the plan schema"""

    cleaned = _CODE_FENCE.sub("", text.strip())
    start, end = cleaned.find("{"), cleaned.rfind("}")
    if start == -1 or end < start:
        raise PlanGenerationError("Model response contains no JSON object")

    try:
        payload = json.loads(cleaned[start:end + 1])
    except json.JSONDecodeError as e:
        raise PlanGenerationError(f"Model response is not valid JSON: {e}") from e

    try:
        return ExecutionPlan.model_validate(payload)
    except ValidationError as e:
        raise PlanGenerationError(f"Model response does not match the plan schema: {e.error_count()} errors") from e


class PlanGenerator:
    """Asks the chat model for a plan and validates the answer"""

    def __init__(self, model: BaseChatModel, timeout: Optional[float] = None):
        self.model = model
        self.timeout = timeout

    async def generate(self, prompt: str) -> ExecutionPlan:
        messages = [SystemMessage(content=SYSTEM_ROLE), HumanMessage(content=prompt)]

        try:
            if self.timeout is None:
                response = await self.model.ainvoke(messages)
            else:
                response = await asyncio.wait_for(self.model.ainvoke(messages), timeout=self.timeout)
        except asyncio.TimeoutError as e:
            raise PlanGenerationError(f"Model call timed out after {self.timeout}s") from e
        except Exception as e:
            raise PlanGenerationError(f"Model call failed: {e}") from e

        text = message_text(response.content)
        logger.debug("Model response received", length=len(text))
        return parse_plan(text)
