"""
Magic-Loc Central Gateway Package.

Ingests UWB anchor serial streams, synchronizes range reports across anchors
and publishes trilaterated tag positions.

Package structure:
- io: Serial framing, rzcobs unstuffing, serial sources, publish sinks
- proto: Fixed-layout packet records and topic serialization
- localization: Anchor coordinate table, multi-stream synchronizer, solver
- metrics: Diagnostics, counters, histograms
- pipeline: Single-threaded decode/dispatch core
- gateway: Event loop multiplexing the stream readers
"""

__version__ = "0.1.0"
__author__ = "Magic-Loc Team"
