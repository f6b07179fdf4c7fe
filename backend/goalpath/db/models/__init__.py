"""ORM models exposed for metadata discovery."""
from goalpath.db.models.goal import Goal
from goalpath.db.models.key_result import KeyResult
from goalpath.db.models.plan_action_log import PlanActionLog
from goalpath.db.models.quarterly_objective import QuarterlyObjective
from goalpath.db.models.user import User
from goalpath.db.models.yearly_objective import YearlyObjective

__all__ = [
    "Goal",
    "KeyResult",
    "PlanActionLog",
    "QuarterlyObjective",
    "User",
    "YearlyObjective",
]
