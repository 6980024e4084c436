"""Invoice Portal — upload, browse and manage PDF invoices.

Administrators upload invoices through the API, the dashboard lists
and manages them, and every connected dashboard receives live updates
over a WebSocket when another admin uploads or deletes a file.
"""

__version__ = "0.1.0"
