"""directory/ -- Tenant-scoped user directory orchestration.

Layer rule: directory/ imports from auth/ and core/ only. api/ imports from
directory/, not the other way around.
"""
