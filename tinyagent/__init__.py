"""
TinyAgent - Tool-Calling Agent Runtime
======================================

A small runtime that drives a language model through a tool-calling loop.

This package provides:
- Agent loop with streaming, telemetry and bounded interactions
- Registry of external tool providers spoken to over MCP stdio
- RAG knowledge base: chunking, embeddings and a local vector store
- Conversation storage and a terminal chat front end
"""

__version__ = "1.0.0"
