"""evileye models package.

Defines the shared data contracts produced by the scan pipeline:

  - outcome.py: ScanStage, ScanSuccess, ScanFailure, ScanOutcome

These models are the single source of truth for what the Report Sink consumes.
"""
