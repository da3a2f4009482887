"""
Session controller.

ChatSession turns a client message into a persisted, optionally
tool-grounded answer. See pathways.session.chat for the turn flow.
"""

from pathways.session.chat import Answer, ChatSession, DegradedAnswer, TurnLocks

__all__ = [
    "Answer",
    "ChatSession",
    "DegradedAnswer",
    "TurnLocks",
]
