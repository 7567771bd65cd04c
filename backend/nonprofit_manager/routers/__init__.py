"""HTTP routers mounted under `/api`.

Every router requires a bearer token (see `main.py`). Handlers stay
thin: they build a service with the request's session and the acting
user, call it, and convert ORM rows into `*Read` schemas.
"""
