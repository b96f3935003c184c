"""gitopsctl - GitOps convergence of cluster resources from Git repositories."""

__version__ = "0.1.0"
