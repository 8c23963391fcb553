"""Agentic loop building blocks: parser, context, guard and the LangGraph state machine."""
