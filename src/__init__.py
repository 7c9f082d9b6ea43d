"""
SakuPintar - Source Package

A personal finance tracker for students: income and expense records,
budget-health metrics, and an AI assistant that can record
transactions from a chat.

DESIGN PRINCIPLES:
1. The store is the single source of truth; every write is made durable
2. AI suggests labels, local code does the arithmetic
3. AI failures degrade to fallbacks, never to crashes
4. Every write and every assistant action is auditable
5. Storage layer is swappable
"""

__version__ = "1.0.0"
__author__ = "SakuPintar Team"
