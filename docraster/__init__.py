"""docraster: turn uploaded PDF/DOC/DOCX files into a PDF plus page images."""

__version__ = "0.1.0"
