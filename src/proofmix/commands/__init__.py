"""
proofmix CLI command implementations.

Each module exposes ``register_parsers(subparsers)`` and command functions
returning JSON-serializable dicts.
"""
