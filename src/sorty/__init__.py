"""
Sorty - Duplicate-Aware File Organizer

A CLI tool for tidying a directory tree into category folders.

This package provides functionality to:
- Scan a directory tree into an immutable catalog of files
- Detect duplicate files by size, then by content hash
- Pair archives with already-extracted sibling directories
- Classify files into category folders with ordered rules
- Build a deterministic move plan without touching the filesystem
- Execute a plan as a separate, explicit step
- Generate text and CSV reports of the results
"""

# Product identity constants
PRODUCT_NAME = "Sorty"
PRODUCT_VERSION = "1.0.0"
PRODUCT_DESCRIPTION = "Duplicate-Aware File Organizer"

__version__ = PRODUCT_VERSION
__author__ = "Sorty Team"
