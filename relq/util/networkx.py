"""Provides graph-centric algorithms based on NetworkX [nx]_.

relq uses these to inspect the graph of declared entity relationships.

References
----------

.. [nx] Aric A. Hagberg, Daniel A. Schult and Pieter J. Swart, "Exploring network structure, dynamics, and function using
        NetworkX", in Proceedings of the 7th Python in Science Conference (SciPy2008), Gäel Varoquaux, Travis Vaught, and
        Jarrod Millman (Eds), (Pasadena, CA USA), pp. 11-15, Aug 2008
"""
from __future__ import annotations

import typing
from collections.abc import Collection

import networkx as nx

NodeType = typing.TypeVar("NodeType")
"""Generic type to model the specific nodes contained in a NetworkX graph."""


def nx_cycles(graph: nx.DiGraph) -> Collection[list[NodeType]]:
    """Determines all elementary cycles of a directed graph.

    Each cycle is given as the list of its nodes, without repeating the first node at the end. Self-loops are cycles of
    length 1.
    """
    return list(nx.simple_cycles(graph))
