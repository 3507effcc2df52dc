"""Services for the public character card library."""
