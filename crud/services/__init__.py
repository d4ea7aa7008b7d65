# Services package init
"""
CRUD App: Services Layer
========================

What:  Business logic between routes (HTTP) and the database (persistence).
How:   Stateless service objects receive the request's AsyncSession and return
       ORM instances or raise application exceptions.

Service Inventory:
    - UserService:    user validation, random ids, partial update, soft delete
    - AccountService: form parsing, balance range, owner checks
    - HealthChecker:  database ping, memory pressure, process metrics
    - integrity:      constraint-violation → exception translation
"""
