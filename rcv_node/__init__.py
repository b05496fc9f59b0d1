"""
rcv_node package initializer

Keep this module lightweight. Do not import FastAPI or crypto modules here,
so the ledger runtime can be used without booting the HTTP surface.
"""

__version__ = "0.1.0"

__all__ = ["__version__"]
