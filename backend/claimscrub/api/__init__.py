"""API routers for the claim scrubber."""

from claimscrub.api.validation import router as validation_router

__all__ = [
    "validation_router",
]
