from .github import GitHubReleases

__all__ = ["GitHubReleases"]
