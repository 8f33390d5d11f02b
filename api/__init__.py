"""api/ -- HTTP surface (FastAPI) over the authentication core."""
