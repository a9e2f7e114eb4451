"""
State Machine Module for the Trip Entry Conversation
"""
from triplog.state_machine.states import UserState
from triplog.state_machine.engine import ConversationEngine
from triplog.state_machine.renderer import PromptRenderer

__all__ = ["UserState", "ConversationEngine", "PromptRenderer"]
