# Routers are imported by backend.web.main; keep this package free of imports.
