"""Interactive layer: session state machine and the workspace wiring it up."""

from .state import AppState, InvalidTransition, Session
from .workspace import BudgetWorkspace

__all__ = ["AppState", "InvalidTransition", "Session", "BudgetWorkspace"]
