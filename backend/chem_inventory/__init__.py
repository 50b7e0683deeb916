"""Laboratory chemical inventory: catalog, bottles, locations and bottle id allocation."""

__version__ = "1.0.0"
