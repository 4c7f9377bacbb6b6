"""auth/ -- Credentials, tokens, and user persistence for the user directory.

Layer rule: auth/ imports only stdlib, third-party libraries, and core/.
It does NOT import from api/ or directory/.
api/ and directory/ import from auth/, not the other way around.
"""
