"""
Markbook: hierarchical academic record aggregation and ranking.

Keeps per-student marks for each subject of each sequence and term of an academic
year, derives coefficient-weighted averages, class ranks and discipline ratings, and
keeps an append-only, tamper-evident history of every mark change.
"""

__version__ = "1.0.0"
__author__ = "Markbook Development Team"
__description__ = "Hierarchical Academic Record Aggregation & Ranking Engine"
