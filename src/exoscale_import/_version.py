"""Package version and the User-Agent sent to Exoscale endpoints."""

__version__ = "0.1.0"

USER_AGENT = f"Exoscale-Template-Import/{__version__}"
