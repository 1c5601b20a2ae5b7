"""Tenant placement for Kubernetes: resource types, API clients, admission webhook and orchestrator."""

__version__ = "0.1.0"