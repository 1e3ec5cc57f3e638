"""api/ -- FastAPI HTTP layer for Nexus. Imports from auth/, core/, and projects/; nothing imports from api/."""
