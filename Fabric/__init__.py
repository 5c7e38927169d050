from .task import Task, Outcome
from .node import Tier, NodeCategory, NodeDescriptor
from .classifier import classify, is_edge, is_cloud
from .scheduler import Scheduler, GreedyEdgeFirstScheduler, NoPlacement, NO_PLACEMENT
from .logging import DecisionLifecycleLogger

__all__ = [
	"Task",
	"Outcome",
	"Tier",
	"NodeCategory",
	"NodeDescriptor",
	"classify",
	"is_edge",
	"is_cloud",
	"Scheduler",
	"GreedyEdgeFirstScheduler",
	"NoPlacement",
	"NO_PLACEMENT",
	"DecisionLifecycleLogger",
]
