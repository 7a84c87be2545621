"""Point-of-sale terminal: local store, sync engine and backend client."""
