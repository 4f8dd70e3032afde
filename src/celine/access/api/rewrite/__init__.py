from __future__ import annotations

from .engine import PolicyRewriteEngine
from .expressions import parse_filter, parse_mask, parse_policy_expression
from .models import PolicyFailMode, PolicyIssue, PolicyReport, RewriteResult
from .resolver import QueryResolver, ResolvedQuery

__all__ = [
    "PolicyRewriteEngine",
    "PolicyFailMode",
    "PolicyIssue",
    "PolicyReport",
    "RewriteResult",
    "QueryResolver",
    "ResolvedQuery",
    "parse_filter",
    "parse_mask",
    "parse_policy_expression",
]
