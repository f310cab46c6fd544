"""
Funding rule nodes: Allowance and Chore.

A rule pays ``amount`` from the family wallet into one sub-account of its
target child each time it is applied. The distributions it produced are
graph edges (rule -> fund_distribution), appended and never retracted.
"""

from enum import Enum

from pydantic import Field

from nodes.accounts import SubAccountKind
from nodes.base import BaseNode


class Recurrence(str, Enum):
    ONE_TIME = "ONE_TIME"
    WEEKLY = "WEEKLY"
    MONTHLY = "MONTHLY"


class FundingRuleNode(BaseNode):
    """Fields shared by every funding rule variant."""

    family_id: str
    child_id: str
    creator_id: str
    amount: int = Field(gt=0, description="Amount per distribution, in minor units")
    recurrence: Recurrence
    sub_account: SubAccountKind = SubAccountKind.SPEND
    description: str | None = None


class Allowance(FundingRuleNode):
    node_type: str = Field(default="allowance", frozen=True)
    recurrence: Recurrence = Recurrence.WEEKLY


class Chore(FundingRuleNode):
    node_type: str = Field(default="chore", frozen=True)
    title: str = Field(min_length=1)
    recurrence: Recurrence = Recurrence.ONE_TIME
