"""
User API Backend — Services Layer
==================================

What:  Business logic between the handlers (app.routes) and persistence.

Service Inventory:
    - UserService: users CRUD
    - EmailService: HTTP email relay with retry and circuit breaker
    - HealthService: dependency checks for GET /health
    - CounterStore: rate-limit counter records (in-memory or SQL)
    - background: fire-and-forget task scheduling
"""
