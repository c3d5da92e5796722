"""Small Slack CLI.

The command surface is implemented with Typer and Rich for better help and
error ergonomics; the token lives in the OS keyring.
"""

__all__ = ["__version__"]

__version__ = "0.1.0"
