"""
Core Package

Contains the venue-agnostic core of the analytics service:
- VenueInterface: Abstract base class every venue adapter implements
- VenueManager: Registry and lifecycle coordinator for venue adapters
- FeeModel: Static venue fee table and arbitrage cost calculation
- Schemas: Pydantic models for quotes, opportunities and statistics
- Exceptions: Error codes and the venue error taxonomy

Nothing in this layer knows about a particular venue's API.
"""
