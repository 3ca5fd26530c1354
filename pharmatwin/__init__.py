"""PharmaTwin: pharmacogenomic risk assessment and PK digital twin simulation."""

__version__ = "1.0.0"
