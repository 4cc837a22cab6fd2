"""Group recitation tracker: Khatmas of 30 claimable juz'."""

__version__ = "0.1.0"
