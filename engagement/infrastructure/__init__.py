# ==============================================================================
# Infrastructure Adapters
# ==============================================================================
"""
Concrete adapters for storage, caching and the streaming API.
"""
