"""
Worker type registry

Maps a worker type name to its implementation and catalog entry, checks
the lifecycle contract when a type is registered, and derives the
per-type configuration a worker is started with.
"""

import copy
import inspect
from dataclasses import dataclass, field
from typing import Any, Dict, List, Optional, Type

from research_orchestrator.agents.base_agent import LIFECYCLE_METHODS
from research_orchestrator.core.exceptions import ContractViolationError, NotFoundError
from research_orchestrator.utils.config import Settings, get_settings
from research_orchestrator.utils.logger.custom_logging import LoggerMixin


def check_worker_contract(worker_class: Type[Any], worker_type: Optional[str] = None) -> None:
    """
    Raise ContractViolationError unless ``worker_class`` provides all five
    lifecycle coroutines and leaves no abstract method unimplemented.
    """
    name = worker_type or getattr(worker_class, "__name__", repr(worker_class))
    if not inspect.isclass(worker_class):
        raise ContractViolationError(name, list(LIFECYCLE_METHODS))

    missing = [
        method for method in LIFECYCLE_METHODS
        if not inspect.iscoroutinefunction(getattr(worker_class, method, None))
    ]
    missing.extend(sorted(getattr(worker_class, "__abstractmethods__", ())))
    if missing:
        raise ContractViolationError(name, missing)


@dataclass
class AgentTypeInfo:
    """Catalog entry shown to clients choosing which workers to run."""
    name: str
    description: str = ""
    capabilities: List[str] = field(default_factory=list)
    estimated_time: Optional[str] = None
    dependencies: List[str] = field(default_factory=list)
    available: bool = True

    def to_dict(self) -> Dict[str, Any]:
        return {
            "name": self.name,
            "description": self.description,
            "capabilities": list(self.capabilities),
            "estimated_time": self.estimated_time,
            "dependencies": list(self.dependencies),
            "available": self.available,
        }


# Type-specific configuration defaults, overridable from session preferences
TYPE_CONFIG_DEFAULTS: Dict[str, Dict[str, Any]] = {
    "orchestrator": {
        "specialized_agents": ["source_discovery", "content_analysis", "synthesis", "fact_checking"],
        "coordination_strategy": "sequential",
        "use_external_sources": False,
        "external_content": {},
    },
    "source_discovery": {
        "max_sources": 50,
        "quality_threshold": 0.6,
        "use_external_sources": False,
        "external_content": {},
    },
    "content_analysis": {
        "analysis_frameworks": ["thematic", "sentiment"],
        "max_context_size": 4000,
        "use_external_sources": False,
        "external_content": {},
    },
    "synthesis": {
        "max_synthesis_length": 5000,
        "narrative_style": "academic",
        "coherence_threshold": 0.8,
    },
    "fact_checking": {
        "verification_sources": ["internal"],
        "confidence_threshold": 0.7,
        "use_external_sources": False,
        "external_content": {},
    },
    "language": {
        "supported_languages": ["en", "de", "fr", "es"],
        "auto_detection": True,
        "translation_enabled": False,
    },
}

# Keys that stay fixed regardless of preferences
FIXED_CONFIG_KEYS = {"supported_languages", "auto_detection"}


RESEARCH_TEMPLATES: List[Dict[str, Any]] = [
    {
        "id": "academic_research",
        "name": "Academic Research",
        "description": "Comprehensive academic research with citations and literature review",
        "agent_types": ["echo"],
        "output_format": "academic_paper",
        "estimated_duration_min": 45,
        "default_settings": {
            "detail_level": "high",
            "quality_threshold": 0.7,
            "max_sources": 30,
            "analysis_frameworks": ["thematic", "conceptual", "structural"],
            "sections": ["abstract", "introduction", "literature_review", "analysis", "conclusion"],
        },
    },
    {
        "id": "market_research",
        "name": "Market Research",
        "description": "Business-focused market analysis and competitive intelligence",
        "agent_types": ["echo"],
        "output_format": "business_report",
        "estimated_duration_min": 30,
        "default_settings": {
            "detail_level": "medium",
            "quality_threshold": 0.6,
            "max_sources": 25,
            "analysis_frameworks": ["thematic", "sentiment", "temporal"],
            "sections": ["executive_summary", "market_overview", "competitive_landscape", "recommendations"],
        },
    },
    {
        "id": "technical_analysis",
        "name": "Technical Analysis",
        "description": "In-depth technical analysis and documentation",
        "agent_types": ["echo"],
        "output_format": "technical_doc",
        "estimated_duration_min": 35,
        "default_settings": {
            "detail_level": "high",
            "quality_threshold": 0.7,
            "max_sources": 20,
            "analysis_frameworks": ["thematic", "structural", "conceptual"],
            "sections": ["overview", "technical_details", "implementation_guide", "examples"],
        },
    },
    {
        "id": "quick_overview",
        "name": "Quick Overview",
        "description": "Fast overview of a topic with key insights",
        "agent_types": ["echo"],
        "output_format": "summary_report",
        "estimated_duration_min": 15,
        "default_settings": {
            "detail_level": "low",
            "quality_threshold": 0.5,
            "max_sources": 15,
            "analysis_frameworks": ["thematic", "sentiment"],
            "sections": ["summary", "key_points", "insights"],
        },
    },
]


def apply_template(template_id: str, preferences: Optional[Dict[str, Any]] = None) -> Dict[str, Any]:
    """
    Merge a research template into session preferences.

    Explicit preferences win over template defaults.
    """
    template = next((t for t in RESEARCH_TEMPLATES if t["id"] == template_id), None)
    if template is None:
        raise NotFoundError("Research template", template_id)

    merged = copy.deepcopy(template["default_settings"])
    merged.setdefault("agent_types", list(template["agent_types"]))
    merged.setdefault("output_format", template["output_format"])
    merged["template_id"] = template_id
    merged.update(preferences or {})
    return merged


class AgentTypeRegistry(LoggerMixin):
    """Worker type name -> implementation class and catalog entry."""

    def __init__(self, settings: Optional[Settings] = None):
        super().__init__()
        self.settings = settings or get_settings()
        self._classes: Dict[str, Type[Any]] = {}
        self._catalog: Dict[str, AgentTypeInfo] = {}

    def register(self, worker_type: str, worker_class: Type[Any], info: Optional[AgentTypeInfo] = None) -> None:
        check_worker_contract(worker_class, worker_type)
        self._classes[worker_type] = worker_class
        self._catalog[worker_type] = info or AgentTypeInfo(
            name=worker_type,
            description=(inspect.getdoc(worker_class) or "").split("\n")[0],
        )
        self.logger.info(f"[REGISTRY] Registered worker type '{worker_type}' -> {worker_class.__name__}")

    def get(self, worker_type: str) -> Type[Any]:
        worker_class = self._classes.get(worker_type)
        if worker_class is None:
            raise NotFoundError("Worker type", worker_type)
        return worker_class

    def __contains__(self, worker_type: str) -> bool:
        return worker_type in self._classes

    def list_types(self) -> Dict[str, Dict[str, Any]]:
        return {name: info.to_dict() for name, info in self._catalog.items()}

    def build_config(
        self,
        worker_type: str,
        preferences: Optional[Dict[str, Any]] = None,
        research_topic: Optional[str] = None,
    ) -> Dict[str, Any]:
        """
        Derive a worker's configuration from session preferences.

        Base keys are shared by every type; type-specific defaults are
        overridden by a preference of the same name.
        """
        preferences = dict(preferences or {})
        query = research_topic or preferences.get("research_topic", "")

        config: Dict[str, Any] = {
            "agent_type": worker_type,
            "preferences": preferences,
            "timeout_ms": self.settings.WORKER_TIMEOUT_MS,
            "max_retries": self.settings.WORKER_MAX_RETRIES,
            "query": query,
            "inputs": {
                "query": query,
                "collections": preferences.get("collections"),
            },
        }

        for key, default in TYPE_CONFIG_DEFAULTS.get(worker_type, {}).items():
            if key in FIXED_CONFIG_KEYS:
                config[key] = copy.deepcopy(default)
            else:
                config[key] = preferences.get(key, copy.deepcopy(default))

        dependencies = (preferences.get("agent_dependencies") or {}).get(worker_type)
        if dependencies:
            config["dependencies"] = list(dependencies)
        for key in ("dependency_timeout_sec", "dependency_poll_interval_sec"):
            if key in preferences:
                config[key] = preferences[key]

        return config


def create_default_registry(settings: Optional[Settings] = None) -> AgentTypeRegistry:
    """Registry with the worker types bundled in this package."""
    from research_orchestrator.agents.workers.echo_worker import EchoWorker

    registry = AgentTypeRegistry(settings)
    registry.register(
        EchoWorker.agent_type,
        EchoWorker,
        AgentTypeInfo(
            name="Echo Agent",
            description="Copies its inputs and resolved dependencies into shared memory and an artifact",
            capabilities=["Dependency passthrough", "Smoke testing"],
            estimated_time="seconds",
        ),
    )
    return registry
