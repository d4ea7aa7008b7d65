# Routes package init
"""
CRUD App: Routes Package
========================

Route Inventory:
    - auth.py:      GET /login, /auth/{provider}/login, /auth/google,
                    /auth/callback, /logout
    - pages.py:     GET /, /accounts                    (session required)
    - users.py:     POST/GET /users, GET/PUT/DELETE /users/{id}
                                                        (session required)
    - accounts.py:  POST /accounts, /accounts/update/{id}
                                                        (session required)
    - health.py:    GET /health/live, /health/ready, /health/, /health/metrics

Routes stay thin: pull values from the request, call a service or the
session store, pick the response. Protected routers declare the
authentication gate as a router-level dependency.
"""
