"""auth/ -- Identity and access package for Agora.

Layer rule: auth/ imports only core/, stdlib, and third-party libraries.
It does NOT import from api/ or forum/.
api/ imports from auth/, not the other way around.
"""
