"""
VCF dumper.

Exports variants from a variant store into a single ordered VCF file or
stream, one chromosome window at a time.
"""

__version__ = "1.0.0"
__author__ = "Data Tecnica International"
