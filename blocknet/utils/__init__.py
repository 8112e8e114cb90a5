"""
Utilities

- pair_list.py: ordered name -> value list
- logging.py: configure_logging, MetricsLogger
- checkpoints.py: CheckpointManager (import from the module directly)
"""

from blocknet.utils.pair_list import PairList

__all__ = ["PairList"]
