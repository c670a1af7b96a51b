"""
Calendar Assistant
==================

A conversational assistant for Google Calendar and Tasks, driven by an LLM
function-calling loop.

Modules:
- core: Configuration, logging, errors, events and the LLM clients
- conversation: Transcript, intents, drafts, interpreter, dispatcher and state machine
- tools: Google Calendar, Tasks, Contacts and Docs access, identity, agenda views
- assistant: The session facade used by the front-end
"""

__version__ = "1.0.0"
__author__ = "Calendar Assistant Project"
