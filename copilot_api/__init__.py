"""Job portal AI copilot: assist routes, gateway client and panel state."""

__version__ = "1.0.0"
