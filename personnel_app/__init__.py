"""Personnel registry application package."""
