"""Document paths used by the board."""

from __future__ import annotations


class BoardPaths:
    """Path scheme, namespaced by app id.

        artifacts/{app_id}/users/{user_id}/profile/data   — Profile document
        artifacts/{app_id}/public/data/links              — Link collection
    """

    def __init__(self, app_id: str) -> None:
        self.app_id = app_id

    def profile(self, user_id: str) -> str:
        return f"artifacts/{self.app_id}/users/{user_id}/profile/data"

    @property
    def links(self) -> str:
        return f"artifacts/{self.app_id}/public/data/links"

    def link(self, link_id: str) -> str:
        return f"{self.links}/{link_id}"
