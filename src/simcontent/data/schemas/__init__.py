"""Built-in schema definitions for the content entity types."""
