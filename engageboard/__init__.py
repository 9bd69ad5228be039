"""engageboard — a community link board where you engage before you share."""

__version__ = "0.1.0"
