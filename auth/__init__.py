"""auth/ -- Credentials and request signing for the DAX partner API.

Layer rule: auth/ imports stdlib, third-party libraries and core/.
It does NOT import from main. core/client.py imports from auth/ to
orchestrate tokens and signatures.
"""
