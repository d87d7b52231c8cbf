"""Solver handlers."""

from .solver import SolverHandler, OracleSwapHandler

__all__ = ["SolverHandler", "OracleSwapHandler"]
