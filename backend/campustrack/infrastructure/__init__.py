"""Infrastructure adapters for external services"""
