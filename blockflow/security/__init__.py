from .policy import AllowAllPolicy, PolicyEngine

__all__ = ["AllowAllPolicy", "PolicyEngine"]
