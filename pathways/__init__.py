"""
Pathways - conversation orchestration engine for LLM backends.

This package keeps durable per-conversation message history, lets a "caller"
model decide which tool integrations a turn needs, runs them, and asks a
primary model for the final answer grounded in the tool output.
"""

__version__ = "0.1.0"
