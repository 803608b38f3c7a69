"""REST API over the claim workflow."""

from claim_desk.api.app import create_app

__all__ = ["create_app"]
