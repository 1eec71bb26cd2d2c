"""Base class for the service's LangGraph pipelines."""

from __future__ import annotations

from abc import ABC, abstractmethod
from langgraph.graph import StateGraph

from src.utils.logging_config import logger


def with_state(state: dict, **updates) -> dict:
    """Return a new state dict with updates applied."""

    return {**state, **updates}


class BaseGraph(ABC):
    """Abstract base for pipeline graphs.

    Nodes never raise. A failing node records ``error`` and the ``exception``
    behind it, later nodes pass the state through untouched, and the caller
    decides whether to re-raise. Logging goes through one place so node names
    are consistent and user data stays out of the logs.
    """

    def __init__(self, timeout: float = 30):
        self.timeout = timeout
        self.logger = logger

    @abstractmethod
    def build_graph(self) -> StateGraph:
        """Build and return the StateGraph instance."""

    def _log_node_execution(self, node_name: str, state: dict) -> None:
        self.logger.debug("Executing node: %s", node_name)

    def _log_node_error(self, node_name: str, error: Exception) -> None:
        self.logger.error("Node %s failed: %s", node_name, str(error))

    def _fail(self, state: dict, node_name: str, error: Exception) -> dict:
        """Record a node failure in the state."""

        self._log_node_error(node_name, error)
        return with_state(state, error=str(error), exception=error)

    def compile(self):
        """Build and compile the graph for execution."""

        return self.build_graph().compile()
