"""Agent checkout.

Checkout sessions, carts and dual-strategy payment completion for
autonomous purchasing agents, exposed over MCP and HTTP.
"""

__version__ = "0.1.0"
