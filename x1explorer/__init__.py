"""Data-access core for the X1 network explorer.

Sub-packages:
- config: settings and logging setup
- utils: endpoint registry, response cache, call deduplicator, RPC dispatcher,
  typed RPC client and transaction classifier
- agents: snapshot, identity, block/window and validator aggregation plus the
  ExplorerService facade used by the presentation layer
"""

__version__ = "0.4.0"
