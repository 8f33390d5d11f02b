"""core/ -- Configuration kernel. Imports nothing from api/ or auth/."""
