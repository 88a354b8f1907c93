"""Deal intake and conversion workflow for the business-operations console."""
