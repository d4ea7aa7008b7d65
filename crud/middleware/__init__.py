# Middleware package init
"""
CRUD App: Middleware Package
============================

Middleware Chain (outermost first):
    Request → [Recovery] → [Logging] → [Security Headers] → [CORS]
            → [Rate Limit] → [Timeout] → [Session] → Router → [Auth Gate] → Handler

    Starlette runs the LAST added middleware first, so create_app() adds them
    in reverse: Session first, Recovery last.

    Any stage may answer on its own (429, 408, 500, CORS preflight); later
    stages and the handler are then skipped.
"""
