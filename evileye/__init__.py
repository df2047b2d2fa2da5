"""evileye: find leaked credentials in screenshots and image dumps.

Walks a directory tree for image files, runs OCR over each one and flags
images whose recognized text looks like an API key, token or password.
"""

__version__ = "0.1.0"
