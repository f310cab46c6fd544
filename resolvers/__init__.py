"""Query resolution layer."""

from resolvers.resolver import GraphResolver

__all__ = ["GraphResolver"]
