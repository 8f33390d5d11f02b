"""auth/ -- Authentication and authorization core for RestAuth.

Layer rule: auth/ imports only stdlib, third-party libraries and core/.
It does NOT import from api/ (auth/dependencies.py is the one FastAPI-aware
module and still reads its collaborators from app.state).
api/ imports from auth/, not the other way around.
"""
