"""
Finance Tables - Source Package

User-defined typed tables for personal finance tracking, with an AI
assistant that drafts new tables and answers questions about them.

DESIGN PRINCIPLES:
1. Row shape always tracks the column set
2. AI proposes -> Human accepts -> System saves
3. Coercion is lenient, never fatal
4. Every change is auditable
5. Storage layer is swappable
"""

__version__ = "1.0.0"
__author__ = "Finance Tables Team"
