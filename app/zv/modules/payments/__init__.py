"""
Payments module (YooKassa).

Checkout creates a PENDING order and a provider payment; the provider webhook or an
explicit status check fulfils the order by issuing battlepasses. Fulfilment is
idempotent: an order is fulfilled at most once.
"""
