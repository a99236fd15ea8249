"""DonateLive: donation pledges, webhook confirmation and live totals."""

__version__ = "0.1.0"
