"""
GitHub access for contest repositories.
"""

from .client import GitHubClient, GitHubResponse, RateLimiter
from .resolver import RepositoryResolver, TreeEntry, parse_repo_reference, solidity_entries

__all__ = [
    "GitHubClient",
    "GitHubResponse",
    "RateLimiter",
    "RepositoryResolver",
    "TreeEntry",
    "parse_repo_reference",
    "solidity_entries",
]
