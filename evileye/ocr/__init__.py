"""OCR capability used by the scanner.

  - decode.py: file bytes to an RGB8 pixel buffer (Pillow)
  - engine.py: the OCR engine contract and its Tesseract implementation
"""
