"""
Use Cases Package.

Each use case is a self-contained module with its own:
- domain/: Pure business logic (policies, services)
- models and repository for data access
- routes exposing it over HTTP

Available use cases:
- returns: Returns management with categorization and merchant insights
"""
