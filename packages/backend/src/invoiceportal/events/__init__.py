"""Domain events and their wire format.

Learn: A domain event is something that happened to an invoice
(uploaded, deleted) or a hint that clients should reload everything.
Events are immutable and carry no identity beyond their payload, so
every consumer must apply them idempotently.
"""
