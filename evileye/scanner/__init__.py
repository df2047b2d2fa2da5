"""evileye scanner package.

Provides the scan-extract-detect pipeline: image discovery (locator),
OCR text extraction (extractor), the secret pattern set (definitions),
the secret heuristic (detector) and the bounded worker pool (pipeline).
"""
