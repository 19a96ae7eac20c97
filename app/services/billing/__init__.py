"""Provider state synchronization engine.

Services are assembled in ``app.services.billing.container``; import the
individual modules directly.
"""
