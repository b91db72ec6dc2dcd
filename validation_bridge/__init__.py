"""validation-bridge: supervised JSON-RPC client for the validation-lib runner."""

__version__ = "0.1.0"
