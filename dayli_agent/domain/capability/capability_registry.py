from typing import Dict, List, Any, Optional, Callable, Type
import threading
import structlog
from pydantic import BaseModel

from dayli_agent.domain.capability.capability import Capability, EntityRule, WorkflowParams
from dayli_agent.domain.errors import CapabilityRegistrationError

logger = structlog.get_logger(__name__)


class CapabilityRegistry:
    """Catalog of executable capabilities, keyed by unique name"""

    def __init__(self):
        self.capabilities: Dict[str, Capability] = {}
        self.capability_categories: Dict[str, List[str]] = {}
        self._lock = threading.Lock()

    def register(self, capability: Capability) -> Capability:
        """Register a new capability"""

        with self._lock:
            if capability.name in self.capabilities:
                raise CapabilityRegistrationError(f"Capability '{capability.name}' is already registered")

            self.capabilities[capability.name] = capability
            self.capability_categories.setdefault(capability.category, []).append(capability.name)

        logger.info("Registered capability", capability=capability.name, category=capability.category)
        return capability

    def capability(
        self,
        name: str,
        category: str,
        parameter_schema: Type[BaseModel] = WorkflowParams,
        description: str = "",
        timeout: Optional[float] = None,
        recoverable_on_error: bool = True,
        entity_rule: Optional[EntityRule] = None
    ) -> Callable:
        """Decorator form of register for a handler function"""

        def decorator(handler: Callable) -> Callable:
            self.register(Capability(
                name=name,
                category=category,
                description=description or (handler.__doc__ or "").strip(),
                parameter_schema=parameter_schema,
                handler=handler,
                timeout=timeout,
                recoverable_on_error=recoverable_on_error,
                entity_rule=entity_rule
            ))
            return handler

        return decorator

    def unregister(self, name: str) -> bool:
        with self._lock:
            capability = self.capabilities.pop(name, None)
            if capability is None:
                return False
            self.capability_categories[capability.category].remove(name)
            return True

    def has(self, name: str) -> bool:
        with self._lock:
            return name in self.capabilities

    def names(self) -> List[str]:
        with self._lock:
            return list(self.capabilities.keys())

    async def get_capability(self, name: str) -> Optional[Capability]:
        """Get a capability by name"""

        with self._lock:
            return self.capabilities.get(name)

    async def get_available_capabilities(self) -> List[Capability]:
        """Get all registered capabilities"""

        with self._lock:
            return list(self.capabilities.values())

    async def get_capabilities_by_category(self, category: str) -> List[Capability]:
        """Get capabilities by category"""

        with self._lock:
            names = self.capability_categories.get(category, [])
            return [self.capabilities[name] for name in names if name in self.capabilities]

    async def search_capabilities(self, query: str) -> List[Capability]:
        """Search capabilities by name or description"""

        query_lower = query.lower()
        with self._lock:
            return [
                c for c in self.capabilities.values()
                if query_lower in c.name.lower() or query_lower in c.description.lower()
            ]

    async def get_catalog(self) -> List[Dict[str, Any]]:
        """Capability metadata for the understanding prompt, grouped by category"""

        with self._lock:
            ordered = sorted(self.capabilities.values(), key=lambda c: (c.category, c.name))
            return [c.to_dict() for c in ordered]
