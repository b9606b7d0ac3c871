"""Quiz domain services: access control, catalog, run lifecycle, answer
submission and result projections.

HTTP routes and socket handlers import these; the services own every
guard and every write so transport code stays free of game rules.
"""
