"""
GitHub side-effect gateway (REST/GraphQL over httpx, local git checkout).
"""
from repo_agents.github.client import GitHubClient
from repo_agents.github.gateway import GitHubGateway, SideEffectGateway
from repo_agents.github.git import GitWorkspace

__all__ = ["GitHubClient", "GitHubGateway", "GitWorkspace", "SideEffectGateway"]
