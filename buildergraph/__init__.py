"""
BuilderGraph
Verifiable developer profiles, projects and endorsements on a decentralized ledger
"""

__version__ = "1.0.0"
__author__ = "BuilderGraph Team"

from buildergraph.config import BuilderGraphConfig, get_config

__all__ = [
    "BuilderGraphConfig",
    "get_config",
]
