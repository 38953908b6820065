"""Core configuration, logging, security, RBAC and rate limiting."""
