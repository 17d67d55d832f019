"""Persona fan-out orchestration with a reconciling synthesis stage."""

from dialectica.client import EndpointConfig, ParsedResponse, ResilientClient, ResponseContract, RetryPolicy
from dialectica.history import HistoryLedger, InMemoryHistoryStore, JsonFileHistoryStore
from dialectica.models import (
    AgentResult,
    AnalysisMode,
    AnalysisRequest,
    Citation,
    Failed,
    Ok,
    OrchestrationRun,
    Persona,
    RunState,
)
from dialectica.orchestrator import Orchestrator, validate_request
from dialectica.personas import PersonaRegistry, default_registry

__all__ = [
    "AgentResult",
    "AnalysisMode",
    "AnalysisRequest",
    "Citation",
    "EndpointConfig",
    "Failed",
    "HistoryLedger",
    "InMemoryHistoryStore",
    "JsonFileHistoryStore",
    "Ok",
    "OrchestrationRun",
    "Orchestrator",
    "ParsedResponse",
    "Persona",
    "PersonaRegistry",
    "ResilientClient",
    "ResponseContract",
    "RetryPolicy",
    "RunState",
    "default_registry",
    "validate_request",
]
