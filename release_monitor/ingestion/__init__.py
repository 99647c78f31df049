"""
Release ingestion from the GitHub REST API.
"""

from .github_client import GitHubReleaseClient

__all__ = ["GitHubReleaseClient"]
