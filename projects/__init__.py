"""projects/ -- Project, assignment, and document persistence for Nexus.

Layer rule: projects/ may import from core/ and auth/ (for the access facts
types). It does NOT import from api/.
"""
