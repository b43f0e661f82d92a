"""SolGraph: Solidity function call graphs with persistent, user-edited panels."""

__version__ = "0.1.0"
