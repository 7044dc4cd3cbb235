"""Domain layer - business rules independent of persistence and transports"""
