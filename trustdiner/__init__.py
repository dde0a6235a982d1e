"""TrustDiner review service: allergen-aware restaurant reviews."""

__version__ = "1.0.0"
