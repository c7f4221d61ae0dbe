"""RoofCRM commission calculation and eligibility engine."""

__version__ = "1.0.0"
