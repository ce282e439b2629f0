"""
Reports Infrastructure Module

PDF rendering of confirmed voice transcripts.
"""

from app.infrastructure.reports.transcript_pdf import pdf_filename, render_transcript_pdf

__all__ = ["pdf_filename", "render_transcript_pdf"]
