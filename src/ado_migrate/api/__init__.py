"""Azure DevOps and GitHub API access."""
