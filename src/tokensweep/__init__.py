"""tokensweep - move every SPL token and a rent-safe share of SOL to one wallet."""

__version__ = "0.1.0"
