"""
Family node.

A Family aggregates children, admins and funding rules, and owns exactly one
Wallet. All of those are graph edges from the family; the family itself only
carries its descriptive fields and the id of the institution serving it.
"""

from pydantic import Field

from nodes.base import BaseNode


class Family(BaseNode):
    node_type: str = Field(default="family", frozen=True)
    name: str = Field(min_length=1)
    # Back-reference; the institution's family list is authoritative
    institution_id: str | None = None
