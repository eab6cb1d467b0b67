"""SyncBridge: bidirectional Linear <-> GitHub issue sync"""

__version__ = "1.0.0"
