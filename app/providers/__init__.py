"""
Provider layer for swappable implementations.

Each provider type has an abstract interface that concrete implementations
must satisfy. Providers are selected per request by id, so new image services
can be added without touching the orchestrator.

Directory Structure:
    providers/
    ├── __init__.py            # This file
    └── image/                 # Image generation providers
        ├── __init__.py        # Registry / factory
        ├── interface.py       # Abstract interface all providers implement
        ├── gemini_impl.py     # Google Gemini implementation
        ├── flux_impl.py       # Flux on Replicate implementation
        └── openai_impl.py     # OpenAI GPT Image implementation
"""

__all__ = []
