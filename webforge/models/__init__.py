from webforge.models.user import User
from webforge.models.team import Team
from webforge.models.team_member import TeamMember
from webforge.models.team_pricing import TeamPricing
from webforge.models.balance_transaction import BalanceTransaction
from webforge.models.generation_job import GenerationJob

__all__ = [
    "User", "Team", "TeamMember", "TeamPricing",
    "BalanceTransaction", "GenerationJob",
]
