from dialogue_router.routing.dispatcher import ActionDispatcher, ActionResult
from dialogue_router.routing.engine import DialogueEngine
from dialogue_router.routing.router import DialogueRouter

__all__ = [
    "DialogueEngine",
    "DialogueRouter",
    "ActionDispatcher",
    "ActionResult",
]
